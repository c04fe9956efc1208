"""Tests for layered YAML configuration."""

import pytest
import yaml

from zero_models.codegen.core.config import (
    ConfigurationError,
    ConfigurationService,
    ConfigValidationError,
    deep_merge,
)


def write_config(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestDeepMerge:
    def test_nested_mappings_merge_and_lists_replace(self):
        base = {"a": {"b": 1, "c": 2}, "items": [1, 2]}
        merged = deep_merge(base, {"a": {"c": 3}, "items": [9]})
        assert merged == {"a": {"b": 1, "c": 3}, "items": [9]}
        assert base["a"]["c"] == 2


class TestConfigurationService:
    def test_defaults_without_file(self):
        config = ConfigurationService()
        assert config.environment == "development"
        assert config.base_output_dir == "frontend/src/lib/models"
        assert "schema_migrations" in config.excluded_tables
        assert config.template_settings["enable_caching"] is True

    def test_environment_from_variable(self, monkeypatch):
        monkeypatch.setenv("ZERO_GENERATOR_ENV", "test")
        config = ConfigurationService()
        assert config.environment == "test"
        assert config.enable_prettier is False
        assert config.force_overwrite is True
        assert config.enable_schema_caching is False

    def test_file_layers(self, isolated_cwd):
        """The default file is read relative to the working directory."""
        write_config(isolated_cwd / "config" / "zero_generator.yml", {
            "zero_generator": {
                "output": {"base_dir": "app/models"},
                "type_overrides": {"citext": "string"},
            },
            "environments": {
                "production": {"output": {"base_dir": "dist/models"}},
            },
        })
        assert ConfigurationService().base_output_dir == "app/models"
        production = ConfigurationService(environment="production")
        assert production.base_output_dir == "dist/models"
        assert production.type_overrides == {"citext": "string"}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yml"
        path.write_text("zero_generator: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigurationService(config_file_path=path)

    def test_validation_errors(self, tmp_path):
        path = write_config(tmp_path / "bad.yml", {
            "zero_generator": {
                "output": {"base_dir": "/absolute/models"},
                "file_operations": {"enable_prettier": "yes", "formatter_command": []},
                "performance": {"max_cache_entries": 0},
            }
        })
        with pytest.raises(ConfigValidationError) as excinfo:
            ConfigurationService(config_file_path=path)
        errors = excinfo.value.errors
        assert "output.base_dir must be a relative path, got /absolute/models" in errors
        assert "file_operations.enable_prettier must be a boolean" in errors
        assert "file_operations.formatter_command must be a non-empty list of strings" in errors
        assert "performance.max_cache_entries must be a positive integer" in errors

    def test_update_config_rolls_back(self):
        config = ConfigurationService()
        with pytest.raises(ConfigValidationError):
            config.update_config("file_operations.force_overwrite", "always")
        assert config.force_overwrite is False

    def test_generator_options(self, tmp_path):
        """Run options may point the output at an absolute directory."""
        config = ConfigurationService()
        config.update_from_generator_options({
            "output_dir": str(tmp_path / "out"),
            "dry_run": True,
            "force": True,
            "skip_prettier": True,
            "exclude_tables": ["audits"],
        })
        assert config.base_output_dir == str(tmp_path / "out")
        assert config.dry_run is True
        assert config.force_overwrite is True
        assert config.enable_prettier is False
        assert config.is_table_excluded("audits")
        assert config.is_valid()

    def test_get_dotted_path(self):
        config = ConfigurationService()
        assert config.get("performance.max_cache_entries") == 100
        assert config.get("performance.missing", "fallback") == "fallback"

    def test_accessors(self):
        config = ConfigurationService(overrides={
            "generator_options": {"validate_schema": False, "enable_pattern_detection": False},
            "template_settings": {"trim_mode": ""},
            "preserve_customizations": ["user.ts"],
        })
        assert config.output_config["base_dir"] == config.base_output_dir
        assert config.types_dir == "frontend/src/lib/models/types"
        assert config.create_directories is True
        assert config.template_trim_mode == ""
        assert config.template_caching is True
        assert config.enable_pattern_detection is False
        assert config.generate_relationships is True
        assert config.generate_enums is True
        assert config.validate_schema is False
        assert config.enable_schema_caching is True
        assert config.cache_ttl == 3600
        assert config.preserve_customizations == ["user.ts"]

    def test_save_round_trip(self, tmp_path):
        config = ConfigurationService()
        config.add_type_override("citext", "string")
        target = config.save(tmp_path / "saved" / "zero_generator.yml")
        reloaded = ConfigurationService(config_file_path=target)
        assert reloaded.type_overrides == {"citext": "string"}

    def test_reset_to_defaults(self):
        config = ConfigurationService(overrides={"output": {"base_dir": "custom"}})
        assert config.base_output_dir == "custom"
        config.reset_to_defaults()
        assert config.base_output_dir == "frontend/src/lib/models"
