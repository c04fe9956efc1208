"""
Feature flags for moving generation from the legacy coordinator to the
staged pipeline.

Routing is sticky per table name, a circuit breaker sends everything back
to the legacy path after repeated new-pipeline errors, and canary runs
execute both paths for comparison.
"""

import copy
import os
import random
import threading
import time
import zlib
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from ...logging_config import get_logger
from ..core.generator import GeneratorError

logger = get_logger(__name__)

PERFORMANCE_SAMPLE_LIMIT = 1000


class MigrationError(GeneratorError):
    """Base exception for the migration harness."""

    pass


class FlagConfigurationError(MigrationError):
    """Raised for invalid flag configuration."""

    pass


class InvalidPercentageError(FlagConfigurationError):
    """Raised when a percentage is outside 0..100."""

    pass


class ManualOverride(Enum):
    FORCE_LEGACY = "force_legacy"
    FORCE_NEW = "force_new"


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class FlagConfig:
    """Tunable migration settings."""

    new_pipeline_percentage: float = 0
    use_new_pipeline_for_tables: List[str] = field(default_factory=list)
    manual_override: Optional[ManualOverride] = None
    enable_canary_testing: bool = False
    canary_sample_rate: float = 5.0
    force_canary_mode: bool = False
    circuit_breaker_enabled: bool = True
    error_threshold: int = 5
    error_window_seconds: float = 300.0
    circuit_recovery_timeout: float = 300.0
    fallback_to_legacy_on_error: bool = True
    track_performance_metrics: bool = True

    def validate(self) -> None:
        """
        Raises:
            InvalidPercentageError: A percentage is outside 0..100
            FlagConfigurationError: Any other invalid value
        """
        for name in ("new_pipeline_percentage", "canary_sample_rate"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
                raise InvalidPercentageError(f"{name} must be between 0 and 100, got {value!r}")
        if isinstance(self.error_threshold, bool) or not isinstance(self.error_threshold, int) \
                or self.error_threshold < 1:
            raise FlagConfigurationError(f"error_threshold must be a positive integer, got {self.error_threshold!r}")
        for name in ("error_window_seconds", "circuit_recovery_timeout"):
            if getattr(self, name) <= 0:
                raise FlagConfigurationError(f"{name} must be positive")
        if self.manual_override is not None and not isinstance(self.manual_override, ManualOverride):
            raise FlagConfigurationError(f"manual_override must be a ManualOverride, got {self.manual_override!r}")


def _bucket(purpose: str, table_name: Optional[str]) -> float:
    """Bucket in [0, 100): stable per table name, random without one."""
    if not table_name:
        return random.uniform(0, 100)
    return (zlib.crc32(f"{purpose}:{table_name}".encode("utf-8")) % 10000) / 100.0


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def apply_env(config: FlagConfig, environ: Mapping[str, str]) -> None:
    """Overlay ``MIGRATION_*`` environment variables onto ``config``."""
    if environ.get("MIGRATION_NEW_PIPELINE_PCT"):
        percentage = float(environ["MIGRATION_NEW_PIPELINE_PCT"])
        config.new_pipeline_percentage = int(percentage) if percentage.is_integer() else percentage
    if environ.get("MIGRATION_NEW_PIPELINE_TABLES"):
        config.use_new_pipeline_for_tables = [
            t.strip() for t in environ["MIGRATION_NEW_PIPELINE_TABLES"].split(",") if t.strip()
        ]
    override = (environ.get("MIGRATION_MANUAL_OVERRIDE") or "").strip().lower()
    if override in ("legacy", "force_legacy"):
        config.manual_override = ManualOverride.FORCE_LEGACY
    elif override in ("new", "force_new"):
        config.manual_override = ManualOverride.FORCE_NEW
    if "MIGRATION_ENABLE_CANARY" in environ:
        config.enable_canary_testing = _env_bool(environ["MIGRATION_ENABLE_CANARY"])
    if environ.get("MIGRATION_CANARY_SAMPLE_RATE"):
        config.canary_sample_rate = float(environ["MIGRATION_CANARY_SAMPLE_RATE"])
    if "MIGRATION_CIRCUIT_BREAKER" in environ:
        config.circuit_breaker_enabled = _env_bool(environ["MIGRATION_CIRCUIT_BREAKER"])
    if environ.get("MIGRATION_ERROR_THRESHOLD"):
        config.error_threshold = int(environ["MIGRATION_ERROR_THRESHOLD"])


class MigrationFeatureFlags:
    """Thread-safe routing decisions between the legacy and new pipelines."""

    def __init__(self, config: Optional[FlagConfig] = None,
                 clock: Callable[[], float] = time.monotonic, **overrides: Any):
        """
        Args:
            config: Starting configuration, defaults when omitted
            clock: Monotonic time source
            **overrides: FlagConfig fields applied on top of ``config``
        """
        config = copy.deepcopy(config) if config else FlagConfig()
        for key, value in overrides.items():
            if not hasattr(config, key):
                raise FlagConfigurationError(f"Unknown flag setting: {key}")
            setattr(config, key, value)
        config.validate()

        self._config = config
        self._clock = clock
        self._lock = threading.RLock()
        self._errors: Deque[float] = deque()
        self._circuit_opened_at: Optional[float] = None
        self._performance: Deque[Dict[str, float]] = deque(maxlen=PERFORMANCE_SAMPLE_LIMIT)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **kwargs: Any) -> "MigrationFeatureFlags":
        """Build flags from ``MIGRATION_*`` environment variables."""
        config = FlagConfig()
        apply_env(config, os.environ if environ is None else environ)
        return cls(config, **kwargs)

    def configure_from_env(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """Apply ``MIGRATION_*`` environment variables to the live configuration."""
        self.configure(lambda config: apply_env(config, os.environ if environ is None else environ))

    @property
    def config(self) -> FlagConfig:
        """A copy of the current configuration."""
        with self._lock:
            return copy.deepcopy(self._config)

    def configure(self, callback: Optional[Callable[[FlagConfig], None]] = None, **changes: Any) -> None:
        """
        Change settings atomically.

        ``callback`` receives a copy of the configuration to mutate; keyword
        changes are applied after it. Nothing changes if validation fails.
        """
        with self._lock:
            candidate = copy.deepcopy(self._config)
            if callback is not None:
                callback(candidate)
            for key, value in changes.items():
                if not hasattr(candidate, key):
                    raise FlagConfigurationError(f"Unknown flag setting: {key}")
                setattr(candidate, key, value)
            candidate.validate()
            self._config = candidate
        logger.info("Migration flags updated: %s", self.configuration_summary())

    # Routing

    def use_new_pipeline(self, table_name: Optional[str] = None) -> bool:
        """Whether a run for ``table_name`` should use the new pipeline."""
        with self._lock:
            config = self._config
            if config.manual_override == ManualOverride.FORCE_LEGACY:
                return False
            if config.manual_override == ManualOverride.FORCE_NEW:
                return True
            if self._state() != CircuitState.CLOSED:
                return False
            if table_name and table_name in config.use_new_pipeline_for_tables:
                return True
            if config.new_pipeline_percentage <= 0:
                return False
            if config.new_pipeline_percentage >= 100:
                return True
            return _bucket("route", table_name) < config.new_pipeline_percentage

    def should_run_canary_test(self, table_name: Optional[str] = None) -> bool:
        with self._lock:
            config = self._config
            if not config.enable_canary_testing or self._state() == CircuitState.OPEN:
                return False
            if config.force_canary_mode:
                return True
            if config.canary_sample_rate <= 0:
                return False
            return _bucket("canary", table_name) < config.canary_sample_rate

    # Circuit breaker

    def _state(self) -> CircuitState:
        if self._circuit_opened_at is None:
            return CircuitState.CLOSED
        if self._clock() - self._circuit_opened_at >= self._config.circuit_recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    @property
    def circuit_breaker_state(self) -> CircuitState:
        with self._lock:
            return self._state()

    def record_new_pipeline_error(self, error: Optional[BaseException] = None) -> None:
        """Count an error; trips the breaker once the threshold is reached inside the window."""
        with self._lock:
            now = self._clock()
            window_start = now - self._config.error_window_seconds
            while self._errors and self._errors[0] < window_start:
                self._errors.popleft()
            self._errors.append(now)
            logger.warning("New pipeline error recorded (%d in window): %s", len(self._errors), error)

            if (self._config.circuit_breaker_enabled
                    and self._circuit_opened_at is None
                    and len(self._errors) >= self._config.error_threshold):
                self._circuit_opened_at = now
                logger.error("Circuit breaker opened after %d errors", len(self._errors))

    def record_new_pipeline_success(self) -> None:
        """A success breaks the run of consecutive errors."""
        with self._lock:
            self._errors.clear()

    def trip_circuit_breaker(self) -> None:
        with self._lock:
            self._circuit_opened_at = self._clock()
        logger.warning("Circuit breaker tripped manually")

    def reset_circuit_breaker(self) -> None:
        with self._lock:
            self._circuit_opened_at = None
            self._errors.clear()
        logger.info("Circuit breaker reset")

    @property
    def error_count(self) -> int:
        with self._lock:
            return len(self._errors)

    # Metrics

    def record_performance_metrics(self, metrics: Mapping[str, float]) -> None:
        if not self._config.track_performance_metrics:
            return
        with self._lock:
            self._performance.append(dict(metrics))

    def performance_statistics(self) -> Dict[str, Any]:
        with self._lock:
            samples = list(self._performance)

        def average(key: str) -> Optional[float]:
            values = [s[key] for s in samples if key in s]
            return round(sum(values) / len(values), 6) if values else None

        return {
            "total_samples": len(samples),
            "avg_legacy_time": average("legacy_execution_time"),
            "avg_new_time": average("new_execution_time"),
            "avg_canary_overhead": average("canary_overhead"),
        }

    def configuration_summary(self) -> Dict[str, Any]:
        with self._lock:
            config = self._config
            return {
                "new_pipeline_percentage": config.new_pipeline_percentage,
                "use_new_pipeline_for_tables": list(config.use_new_pipeline_for_tables),
                "manual_override": config.manual_override.value if config.manual_override else None,
                "canary_testing_enabled": config.enable_canary_testing,
                "canary_sample_rate": config.canary_sample_rate,
                "circuit_breaker_enabled": config.circuit_breaker_enabled,
                "circuit_breaker_state": self._state().value,
                "error_count": len(self._errors),
                "fallback_to_legacy_on_error": config.fallback_to_legacy_on_error,
            }


# Process-wide instance
_feature_flags: Optional[MigrationFeatureFlags] = None
_flags_lock = threading.Lock()


def get_feature_flags() -> MigrationFeatureFlags:
    """Get the process-wide flags, building them from the environment if needed."""
    global _feature_flags
    with _flags_lock:
        if _feature_flags is None:
            _feature_flags = MigrationFeatureFlags.from_env()
        return _feature_flags


def set_feature_flags(flags: MigrationFeatureFlags) -> None:
    global _feature_flags
    with _flags_lock:
        _feature_flags = flags


def reset_feature_flags() -> None:
    global _feature_flags
    with _flags_lock:
        _feature_flags = None
