"""
Single entry point that routes generation between the legacy coordinator
and the staged pipeline according to the migration flags.
"""

import dataclasses
import tempfile
import threading
import uuid
from typing import Any, Callable, Dict, Mapping, Optional

from ...logging_config import get_logger
from ..coordinator import GenerationCoordinator
from ..core.generator import GenerationResult
from ..pipeline.generation import GenerationPipeline
from .comparator import ComparisonResult, OutputComparator
from .flags import CircuitState, MigrationError, MigrationFeatureFlags, get_feature_flags
from .rollback import RollbackManager

logger = get_logger(__name__)

# A factory takes run options and returns something with ``execute() -> GenerationResult``.
RunnerFactory = Callable[[Mapping[str, Any]], Any]


class MigrationAdapter:
    """Routes, falls back, runs canary comparisons and keeps counters."""

    def __init__(self, options: Optional[Mapping[str, Any]] = None,
                 feature_flags: Optional[MigrationFeatureFlags] = None,
                 legacy_factory: Optional[RunnerFactory] = None,
                 new_factory: Optional[RunnerFactory] = None,
                 comparator: Optional[OutputComparator] = None,
                 rollback_manager: Optional[RollbackManager] = None):
        """
        Args:
            options: Default run options, merged under per-call options
            feature_flags: Routing flags, the process-wide instance when omitted
            legacy_factory: Builds the legacy runner, GenerationCoordinator by default
            new_factory: Builds the new runner, GenerationPipeline by default
            comparator: Used for canary comparisons
            rollback_manager: When set, an automatic rollback is attempted
                after new pipeline errors open the circuit breaker
        """
        self.options: Dict[str, Any] = dict(options or {})
        self.feature_flags = feature_flags or get_feature_flags()
        self.legacy_factory = legacy_factory or GenerationCoordinator
        self.new_factory = new_factory or GenerationPipeline
        self.comparator = comparator or OutputComparator()
        self.rollback_manager = rollback_manager
        self.last_comparison: Optional[ComparisonResult] = None

        self._lock = threading.Lock()
        self._stats = {
            "executions_total": 0,
            "executions_legacy": 0,
            "executions_new": 0,
            "canary_tests": 0,
            "canary_mismatches": 0,
            "fallbacks": 0,
            "new_pipeline_errors": 0,
        }

    @property
    def statistics(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def _count(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._stats[key] += 1

    # Execution

    def generate(self, options: Optional[Mapping[str, Any]] = None) -> GenerationResult:
        """Run one generation request through whichever pipeline the flags select."""
        run_options = {**self.options, **(options or {})}
        table = run_options.get("table")
        execution_id = uuid.uuid4().hex
        self._count("executions_total")

        if self.feature_flags.should_run_canary_test(table):
            return self._run_canary(run_options, execution_id)

        if self.feature_flags.use_new_pipeline(table):
            return self._run_new(run_options, execution_id)

        result = self._run_legacy(run_options)
        return self._with_metadata(result, execution_id, used_new_pipeline=False)

    execute = generate

    def force_execute(self, system: str, options: Optional[Mapping[str, Any]] = None,
                      bypass_circuit_breaker: bool = False) -> GenerationResult:
        """
        Run a specific pipeline, ignoring routing.

        Raises:
            ValueError: ``system`` is not ``legacy`` or ``new``
            MigrationError: The circuit breaker is not closed and not bypassed
        """
        run_options = {**self.options, **(options or {})}
        execution_id = uuid.uuid4().hex
        if system == "legacy":
            self._count("executions_total")
            return self._with_metadata(self._run_legacy(run_options), execution_id,
                                       used_new_pipeline=False, forced=True)
        if system != "new":
            raise ValueError(f"Unknown system {system!r}, expected 'legacy' or 'new'")

        state = self.feature_flags.circuit_breaker_state
        if state != CircuitState.CLOSED and not bypass_circuit_breaker:
            raise MigrationError(f"Circuit breaker is {state.value}; refusing to run the new pipeline")

        self._count("executions_total", "executions_new")
        result = self.new_factory(run_options).execute()
        return self._with_metadata(result, execution_id, used_new_pipeline=True, forced=True)

    def _run_legacy(self, options: Mapping[str, Any]) -> GenerationResult:
        self._count("executions_legacy")
        return self.legacy_factory(options).execute()

    def _run_new(self, options: Mapping[str, Any], execution_id: str) -> GenerationResult:
        self._count("executions_new")
        try:
            result = self.new_factory(options).execute()
        except Exception as e:
            logger.error("New pipeline failed: %s", e)
            self._record_new_error(e)
            if self.feature_flags.config.fallback_to_legacy_on_error:
                logger.warning("Falling back to legacy pipeline")
                self._count("fallbacks")
                result = self._run_legacy(options)
                return self._with_metadata(result, execution_id, used_new_pipeline=False,
                                           fell_back=True, new_pipeline_error=str(e))
            failed = GenerationResult(success=False, errors=(f"New pipeline failed: {e}",),
                                      pipeline="new")
            return self._with_metadata(failed, execution_id, used_new_pipeline=True)

        if result.success:
            self.feature_flags.record_new_pipeline_success()
        else:
            self._record_new_error(None)
        return self._with_metadata(result, execution_id, used_new_pipeline=True)

    def _run_canary(self, options: Mapping[str, Any], execution_id: str) -> GenerationResult:
        """Run legacy for real and the new pipeline into a scratch directory, then compare."""
        self._count("canary_tests", "executions_legacy", "executions_new")
        legacy = self.legacy_factory(options).execute()

        with tempfile.TemporaryDirectory(prefix="zero-canary-") as scratch:
            shadow_options = {**options, "output_dir": scratch, "force": True}
            try:
                new = self.new_factory(shadow_options).execute()
            except Exception as e:
                logger.error("New pipeline failed during canary run: %s", e)
                self._record_new_error(e)
                return self._with_metadata(legacy, execution_id, used_new_pipeline=False,
                                           was_canary_test=True, new_pipeline_error=str(e))

        comparison = self.comparator.compare(legacy, new)
        self.last_comparison = comparison
        if not comparison.overall_match:
            self._count("canary_mismatches")
            logger.warning("Canary mismatch:\n%s", comparison.report())

        self.feature_flags.record_performance_metrics({
            "legacy_execution_time": legacy.execution_time,
            "new_execution_time": new.execution_time,
            "canary_overhead": new.execution_time,
        })
        return self._with_metadata(legacy, execution_id, used_new_pipeline=False,
                                   was_canary_test=True, canary_match=comparison.overall_match)

    def _record_new_error(self, error: Optional[BaseException]) -> None:
        self._count("new_pipeline_errors")
        self.feature_flags.record_new_pipeline_error(error)
        if self.rollback_manager is not None and self.rollback_manager.rollback_recommended():
            self.rollback_manager.execute_automatic_rollback()

    def _with_metadata(self, result: GenerationResult, execution_id: str, **metadata: Any) -> GenerationResult:
        migration = {
            "execution_id": execution_id,
            "used_new_pipeline": False,
            "was_canary_test": False,
            "circuit_breaker_state": self.feature_flags.circuit_breaker_state.value,
            "feature_flag_config": self.feature_flags.configuration_summary(),
        }
        migration.update(metadata)
        statistics = {**result.statistics, "migration": migration}
        return dataclasses.replace(result, statistics=statistics)

    # Status

    def status(self) -> Dict[str, Any]:
        """Flags, breaker, performance and rollback state in one place."""
        return {
            "migration_adapter_stats": self.statistics,
            "feature_flags_state": self.feature_flags.configuration_summary(),
            "performance_metrics": self.feature_flags.performance_statistics(),
            "circuit_breaker_state": self.feature_flags.circuit_breaker_state.value,
            "rollback": self.rollback_manager.current_status() if self.rollback_manager else None,
        }
