"""
Configuration management for model generation.

Configuration is layered: built-in defaults, then the YAML file, then the
built-in per-environment overrides, then the file's own ``environments``
block, then caller overrides. Every layer is deep-merged into the last.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from ...logging_config import get_logger
from .schema import DEFAULT_EXCLUDED_TABLES

logger = get_logger(__name__)

ENVIRONMENT_VARIABLE = "ZERO_GENERATOR_ENV"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_CONFIG_PATH = Path("config") / "zero_generator.yml"
CONFIG_ROOT_KEY = "zero_generator"

DEFAULT_IGNORED_LINE_PATTERNS: List[str] = [
    r"^.*Generated from Rails schema: \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} UTC.*$",
    r"^.*Generated: \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} UTC.*$",
    r"^.*Auto-generated: \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} UTC.*$",
    r"^\s*\*\s*Generated.*\d{4}-\d{2}-\d{2}.*$",
    r"^\s*//.*generated.*\d{4}-\d{2}-\d{2}.*$",
    r"^\s*//.*Auto-generated.*\d{4}-\d{2}-\d{2}.*$",
]

DEFAULT_CONFIG: Dict[str, Any] = {
    "excluded_tables": list(DEFAULT_EXCLUDED_TABLES),
    "type_overrides": {},
    "field_mappings": {},
    "output": {
        "base_dir": "frontend/src/lib/models",
        "types_dir": "frontend/src/lib/models/types",
        "zero_dir": "frontend/src/lib/zero",
        "schema_file": "frontend/src/lib/zero/generated-schema.ts",
        "types_file": "frontend/src/lib/types/generated.ts",
        "frontend_root": "frontend",
    },
    "file_operations": {
        "enable_prettier": True,
        "enable_semantic_comparison": True,
        "create_directories": True,
        "force_overwrite": False,
        "formatter_command": ["npx", "prettier", "--write"],
        "formatter_timeout": 120,
        "batch_max_files": 100,
        "batch_max_memory_mb": 100,
        "ignored_line_patterns": list(DEFAULT_IGNORED_LINE_PATTERNS),
    },
    "template_settings": {
        "enable_caching": False,
        "trim_mode": "-",
        "error_handling": "detailed",
    },
    "generator_options": {
        "enable_pattern_detection": True,
        "generate_relationships": True,
        "generate_enums": True,
        "validate_schema": True,
        "dry_run": False,
    },
    "performance": {
        "enable_schema_caching": True,
        "cache_ttl": 3600,
        "max_cache_entries": 100,
    },
    "polymorphic": {
        "config_path": "config/zero_polymorphic_types.yml",
    },
    "preserve_customizations": [],
}

ENVIRONMENT_OVERRIDES: Dict[str, Dict[str, Any]] = {
    "development": {
        "template_settings": {"enable_caching": True},
    },
    "production": {
        "template_settings": {"enable_caching": True, "error_handling": "minimal"},
        "performance": {"cache_ttl": 7200},
        "file_operations": {"enable_semantic_comparison": True},
    },
    "test": {
        "template_settings": {"enable_caching": False},
        "performance": {"enable_schema_caching": False},
        "file_operations": {"enable_prettier": False, "force_overwrite": True},
    },
}

REQUIRED_KEYS = ("excluded_tables", "output", "file_operations", "generator_options")
BOOLEAN_FILE_OPERATIONS = (
    "enable_prettier",
    "enable_semantic_comparison",
    "create_directories",
    "force_overwrite",
)
POSITIVE_INT_SETTINGS = (
    ("performance", "cache_ttl"),
    ("performance", "max_cache_entries"),
    ("file_operations", "formatter_timeout"),
    ("file_operations", "batch_max_files"),
    ("file_operations", "batch_max_memory_mb"),
)


class ConfigurationError(Exception):
    """Base exception for configuration problems."""

    pass


class ConfigValidationError(ConfigurationError):
    """Raised when the merged configuration is invalid."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration:\n" + "\n".join(f"  - {e}" for e in self.errors))


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``. Lists are replaced, not merged."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class ConfigurationService:
    """Layered configuration for one generator run."""

    def __init__(self, environment: Optional[str] = None,
                 config_file_path: Optional[Union[str, Path]] = None,
                 validate_on_load: bool = True,
                 overrides: Optional[Mapping[str, Any]] = None):
        """
        Load configuration.

        Args:
            environment: Environment name. Falls back to ``ZERO_GENERATOR_ENV``
                and then ``development``.
            config_file_path: YAML file. Defaults to ``config/zero_generator.yml``;
                a missing file is not an error.
            validate_on_load: Validate the merged result immediately
            overrides: Final layer merged over everything else

        Raises:
            ConfigurationError: The file exists but cannot be parsed
            ConfigValidationError: Validation failed
        """
        self.environment = environment or os.environ.get(ENVIRONMENT_VARIABLE) or DEFAULT_ENVIRONMENT
        self.config_file_path = Path(config_file_path) if config_file_path else DEFAULT_CONFIG_PATH
        self.validate_on_load = validate_on_load
        self._overrides = dict(overrides or {})
        self._generator_options_applied = False
        self._stats = {"loads": 0, "updates": 0, "validations": 0, "validation_errors": 0}

        self._config = self._load()

    # Loading

    def _load(self) -> Dict[str, Any]:
        self._stats["loads"] += 1
        file_data = self._read_file()

        config = deep_merge(DEFAULT_CONFIG, file_data.get(CONFIG_ROOT_KEY) or {})
        config = deep_merge(config, ENVIRONMENT_OVERRIDES.get(self.environment, {}))

        file_environments = file_data.get("environments") or {}
        config = deep_merge(config, file_environments.get(self.environment) or {})
        config = deep_merge(config, self._overrides)

        logger.debug("Loaded configuration for environment %s", self.environment)
        if self.validate_on_load:
            self._raise_if_invalid(config)
        return config

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_file_path.exists():
            logger.debug("No configuration file at %s, using defaults", self.config_file_path)
            return {}

        try:
            with self.config_file_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_file_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read {self.config_file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{self.config_file_path} must contain a mapping")
        logger.info("Loaded configuration file %s", self.config_file_path)
        return data

    def reload(self) -> None:
        """Re-read the file and rebuild every layer."""
        self._config = self._load()

    def reset_to_defaults(self) -> None:
        """Drop file and override layers, keeping only defaults plus environment overrides."""
        self._overrides = {}
        self._generator_options_applied = False
        config = deep_merge(DEFAULT_CONFIG, ENVIRONMENT_OVERRIDES.get(self.environment, {}))
        self._config = config

    # Validation

    def validate(self, config: Optional[Mapping[str, Any]] = None) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        config = self._config if config is None else config
        self._stats["validations"] += 1
        errors: List[str] = []

        for key in REQUIRED_KEYS:
            if key not in config:
                errors.append(f"Missing required key: {key}")

        excluded = config.get("excluded_tables", [])
        if not isinstance(excluded, list):
            errors.append("excluded_tables must be a list")
        else:
            for table in excluded:
                if not isinstance(table, str) or not table.strip():
                    errors.append(f"excluded_tables entries must be non-empty strings, got {table!r}")

        output = config.get("output", {})
        if isinstance(output, Mapping):
            for name, value in output.items():
                if not isinstance(value, str) or not value.strip():
                    errors.append(f"output.{name} must be a non-empty string")
                elif os.path.isabs(value) and not self._generator_options_applied:
                    errors.append(f"output.{name} must be a relative path, got {value}")
        else:
            errors.append("output must be a mapping")

        file_ops = config.get("file_operations", {})
        if isinstance(file_ops, Mapping):
            for name in BOOLEAN_FILE_OPERATIONS:
                if name in file_ops and not isinstance(file_ops[name], bool):
                    errors.append(f"file_operations.{name} must be a boolean")
            command = file_ops.get("formatter_command")
            if command is not None and (
                not isinstance(command, list) or not command
                or not all(isinstance(part, str) for part in command)
            ):
                errors.append("file_operations.formatter_command must be a non-empty list of strings")
        else:
            errors.append("file_operations must be a mapping")

        for section, name in POSITIVE_INT_SETTINGS:
            value = (config.get(section) or {}).get(name)
            if value is not None and not _is_positive_int(value):
                errors.append(f"{section}.{name} must be a positive integer")

        if errors:
            self._stats["validation_errors"] += len(errors)
        return errors

    def is_valid(self) -> bool:
        return not self.validate()

    def _raise_if_invalid(self, config: Mapping[str, Any]) -> None:
        errors = self.validate(config)
        if errors:
            for error in errors:
                logger.error("Configuration error: %s", error)
            raise ConfigValidationError(errors)

    # Accessors

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a dotted key path such as ``output.base_dir``."""
        node: Any = self._config
        for part in key_path.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    @property
    def excluded_tables(self) -> List[str]:
        return list(self._config["excluded_tables"])

    @property
    def type_overrides(self) -> Dict[str, str]:
        return dict(self._config.get("type_overrides") or {})

    @property
    def field_mappings(self) -> Dict[str, Any]:
        return dict(self._config.get("field_mappings") or {})

    @property
    def output_config(self) -> Dict[str, str]:
        return dict(self._config["output"])

    @property
    def base_output_dir(self) -> str:
        return self._config["output"]["base_dir"]

    @property
    def types_dir(self) -> str:
        return self._config["output"].get("types_dir") or f"{self.base_output_dir}/types"

    @property
    def frontend_root(self) -> str:
        return self._config["output"].get("frontend_root", "frontend")

    @property
    def file_operations(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config["file_operations"])

    @property
    def generator_options(self) -> Dict[str, Any]:
        return dict(self._config["generator_options"])

    @property
    def template_settings(self) -> Dict[str, Any]:
        return dict(self._config.get("template_settings") or {})

    @property
    def performance(self) -> Dict[str, Any]:
        return dict(self._config.get("performance") or {})

    @property
    def enable_prettier(self) -> bool:
        return bool(self._config["file_operations"].get("enable_prettier", True))

    @property
    def enable_semantic_comparison(self) -> bool:
        return bool(self._config["file_operations"].get("enable_semantic_comparison", True))

    @property
    def create_directories(self) -> bool:
        return bool(self._config["file_operations"].get("create_directories", True))

    @property
    def force_overwrite(self) -> bool:
        return bool(self._config["file_operations"].get("force_overwrite", False))

    @property
    def formatter_command(self) -> List[str]:
        return list(self._config["file_operations"].get("formatter_command") or [])

    @property
    def formatter_timeout(self) -> int:
        return int(self._config["file_operations"].get("formatter_timeout", 120))

    @property
    def batch_max_files(self) -> int:
        return int(self._config["file_operations"].get("batch_max_files", 100))

    @property
    def batch_max_memory_mb(self) -> int:
        return int(self._config["file_operations"].get("batch_max_memory_mb", 100))

    @property
    def ignored_line_patterns(self) -> List[str]:
        return list(self._config["file_operations"].get("ignored_line_patterns") or [])

    @property
    def template_trim_mode(self) -> str:
        return str(self.template_settings.get("trim_mode") or "")

    @property
    def template_caching(self) -> bool:
        return bool(self.template_settings.get("enable_caching", True))

    # Generator switches

    @property
    def enable_pattern_detection(self) -> bool:
        return bool(self._config["generator_options"].get("enable_pattern_detection", True))

    @property
    def generate_relationships(self) -> bool:
        return bool(self._config["generator_options"].get("generate_relationships", True))

    @property
    def generate_enums(self) -> bool:
        return bool(self._config["generator_options"].get("generate_enums", True))

    @property
    def validate_schema(self) -> bool:
        return bool(self._config["generator_options"].get("validate_schema", True))

    @property
    def enable_schema_caching(self) -> bool:
        return bool(self.performance.get("enable_schema_caching", True))

    @property
    def cache_ttl(self) -> int:
        return int(self.performance.get("cache_ttl", 3600))

    @property
    def max_cache_entries(self) -> int:
        return int(self.performance.get("max_cache_entries", 100))

    @property
    def polymorphic_config_path(self) -> str:
        return (self._config.get("polymorphic") or {}).get("config_path", "")

    @property
    def dry_run(self) -> bool:
        return bool(self._config["generator_options"].get("dry_run", False))

    @property
    def preserve_customizations(self) -> List[str]:
        return list(self._config.get("preserve_customizations") or [])

    def is_table_excluded(self, table_name: str) -> bool:
        return table_name in self._config["excluded_tables"]

    # Mutators

    def update_config(self, key_path: str, value: Any, validate: bool = True) -> None:
        """
        Set a dotted key path, re-validating the whole configuration.

        The update is rolled back if validation fails.

        Raises:
            ConfigValidationError: The updated configuration is invalid
        """
        candidate = copy.deepcopy(self._config)
        node = candidate
        parts = key_path.split(".")
        for part in parts[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                raise ConfigurationError(f"Cannot set {key_path}: {part} is not a mapping")
        node[parts[-1]] = copy.deepcopy(value)

        if validate:
            self._raise_if_invalid(candidate)
        self._config = candidate
        self._stats["updates"] += 1
        logger.debug("Configuration updated: %s", key_path)

    def add_excluded_table(self, table_name: str) -> None:
        if table_name not in self._config["excluded_tables"]:
            self.update_config("excluded_tables", [*self._config["excluded_tables"], table_name])

    def remove_excluded_table(self, table_name: str) -> None:
        tables = [t for t in self._config["excluded_tables"] if t != table_name]
        self.update_config("excluded_tables", tables)

    def add_type_override(self, db_type: str, ts_type: str) -> None:
        self.update_config(f"type_overrides.{db_type}", ts_type)

    def update_from_generator_options(self, options: Mapping[str, Any]) -> None:
        """
        Apply CLI/generator options on top of the loaded configuration.

        ``output_dir`` may be absolute here; ``dry_run`` and ``force`` map to
        the matching configuration flags.
        """
        self._generator_options_applied = True
        if options.get("output_dir"):
            self.update_config("output.base_dir", str(options["output_dir"]))
        if "dry_run" in options:
            self.update_config("generator_options.dry_run", bool(options["dry_run"]))
        if options.get("force"):
            self.update_config("file_operations.force_overwrite", True)
        if options.get("skip_prettier"):
            self.update_config("file_operations.enable_prettier", False)
        for table in options.get("exclude_tables") or []:
            self.add_excluded_table(table)

    # Persistence and reporting

    def export_config(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the current configuration as YAML under the ``zero_generator`` key."""
        target = Path(path) if path else self.config_file_path
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8") as f:
            yaml.safe_dump({CONFIG_ROOT_KEY: self._config}, f, default_flow_style=False, sort_keys=False)
        logger.info("Saved configuration to %s", target)
        return target

    def statistics(self) -> Dict[str, Any]:
        return {**self._stats, "environment": self.environment}

    def health_check(self) -> Dict[str, Any]:
        errors = self.validate()
        return {
            "healthy": not errors,
            "environment": self.environment,
            "config_file": str(self.config_file_path),
            "config_file_exists": self.config_file_path.exists(),
            "errors": errors,
        }
