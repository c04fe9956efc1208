"""Tests for the migration adapter: routing, fallback and canary runs."""

import pytest

from zero_models.codegen.core.generator import GeneratedFile, GeneratedModel, GenerationResult
from zero_models.codegen.migration import (
    CircuitState,
    ManualOverride,
    MigrationAdapter,
    MigrationError,
    MigrationFeatureFlags,
    RollbackManager,
)


def result(pipeline, content="export const User = 1;\n", success=True):
    return GenerationResult(
        success=success,
        generated_models=(GeneratedModel("users", "User", "user"),),
        generated_files=(GeneratedFile("user.ts", outcome="created", content=content),),
        errors=() if success else ("users: failed",),
        execution_time=0.01,
        pipeline=pipeline,
    )


class FakeRunnerFactory:
    """Records the options each runner was built with."""

    def __init__(self, pipeline, outcome=None):
        self.pipeline = pipeline
        self.outcome = outcome
        self.calls = []

    def __call__(self, options):
        self.calls.append(dict(options))
        return self

    def execute(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome or result(self.pipeline)


@pytest.fixture
def legacy():
    return FakeRunnerFactory("legacy")


@pytest.fixture
def new():
    return FakeRunnerFactory("new")


def adapter_for(legacy, new, **flag_settings):
    flags = MigrationFeatureFlags(**flag_settings)
    return MigrationAdapter({"table": "users"}, feature_flags=flags,
                            legacy_factory=legacy, new_factory=new)


class TestRouting:
    def test_defaults_to_legacy(self, legacy, new):
        adapter = adapter_for(legacy, new)
        outcome = adapter.generate()
        assert outcome.pipeline == "legacy"
        assert outcome.statistics["migration"]["used_new_pipeline"] is False
        assert new.calls == []
        assert adapter.statistics["executions_legacy"] == 1

    def test_routes_to_new(self, legacy, new):
        adapter = adapter_for(legacy, new, new_pipeline_percentage=100)
        outcome = adapter.execute({"dry_run": True})
        assert outcome.pipeline == "new"
        assert outcome.statistics["migration"]["used_new_pipeline"] is True
        assert new.calls == [{"table": "users", "dry_run": True}]

    def test_migration_metadata(self, legacy, new):
        outcome = adapter_for(legacy, new).generate()
        migration = outcome.statistics["migration"]
        assert len(migration["execution_id"]) == 32
        assert migration["circuit_breaker_state"] == "closed"
        assert migration["feature_flag_config"]["new_pipeline_percentage"] == 0


class TestFallback:
    def test_exception_falls_back_to_legacy(self, legacy):
        failing = FakeRunnerFactory("new", RuntimeError("stage exploded"))
        adapter = adapter_for(legacy, failing, new_pipeline_percentage=100)
        outcome = adapter.generate()
        assert outcome.pipeline == "legacy"
        assert outcome.statistics["migration"]["fell_back"] is True
        assert outcome.statistics["migration"]["new_pipeline_error"] == "stage exploded"
        assert adapter.statistics["fallbacks"] == 1
        assert adapter.feature_flags.error_count == 1

    def test_no_fallback(self, legacy):
        failing = FakeRunnerFactory("new", RuntimeError("stage exploded"))
        adapter = adapter_for(legacy, failing, new_pipeline_percentage=100,
                              fallback_to_legacy_on_error=False)
        outcome = adapter.generate()
        assert not outcome.success
        assert outcome.errors == ("New pipeline failed: stage exploded",)
        assert legacy.calls == []

    def test_unsuccessful_result_counts_as_error(self, legacy):
        new = FakeRunnerFactory("new", result("new", success=False))
        adapter = adapter_for(legacy, new, new_pipeline_percentage=100)
        adapter.generate()
        assert adapter.statistics["new_pipeline_errors"] == 1

    def test_success_resets_error_count(self, legacy, new):
        adapter = adapter_for(legacy, new, new_pipeline_percentage=100)
        adapter.feature_flags.record_new_pipeline_error()
        adapter.generate()
        assert adapter.feature_flags.error_count == 0

    def test_breaker_opens_and_triggers_rollback(self, legacy, tmp_path):
        """Repeated failures open the breaker; the rollback manager then forces legacy."""
        failing = FakeRunnerFactory("new", RuntimeError("boom"))
        flags = MigrationFeatureFlags(new_pipeline_percentage=100, error_threshold=2)
        manager = RollbackManager(flags, state_file_path=tmp_path / "rollback.json")
        adapter = MigrationAdapter({"table": "users"}, feature_flags=flags, legacy_factory=legacy,
                                   new_factory=failing, rollback_manager=manager)

        adapter.generate()
        adapter.generate()
        assert flags.circuit_breaker_state == CircuitState.OPEN
        assert manager.is_rolled_back
        assert flags.config.manual_override == ManualOverride.FORCE_LEGACY

        adapter.generate()
        assert len(failing.calls) == 2
        assert adapter.status()["rollback"]["state"] == "rolled_back"


class TestCanary:
    def test_canary_returns_legacy_and_compares(self, legacy, new):
        adapter = adapter_for(legacy, new, enable_canary_testing=True, force_canary_mode=True)
        outcome = adapter.generate()
        assert outcome.pipeline == "legacy"
        assert outcome.statistics["migration"]["was_canary_test"] is True
        assert outcome.statistics["migration"]["canary_match"] is True
        assert adapter.last_comparison.overall_match
        assert adapter.feature_flags.performance_statistics()["total_samples"] == 1

    def test_new_pipeline_writes_to_scratch(self, legacy, new):
        adapter = adapter_for(legacy, new, enable_canary_testing=True, force_canary_mode=True)
        adapter.generate({"output_dir": "frontend/models"})
        assert legacy.calls[0]["output_dir"] == "frontend/models"
        assert new.calls[0]["output_dir"] != "frontend/models"
        assert new.calls[0]["force"] is True

    def test_mismatch_is_counted(self, legacy):
        different = FakeRunnerFactory("new", result("new", content="export const Other = 2;\n"))
        adapter = adapter_for(legacy, different, enable_canary_testing=True, force_canary_mode=True)
        outcome = adapter.generate()
        assert outcome.statistics["migration"]["canary_match"] is False
        assert adapter.statistics["canary_mismatches"] == 1

    def test_canary_failure_keeps_legacy_result(self, legacy):
        failing = FakeRunnerFactory("new", RuntimeError("boom"))
        adapter = adapter_for(legacy, failing, enable_canary_testing=True, force_canary_mode=True)
        outcome = adapter.generate()
        assert outcome.success
        assert outcome.statistics["migration"]["new_pipeline_error"] == "boom"

    def test_real_canary_run(self, introspector, run_options, output_dir):
        """Both real pipelines agree and only the legacy output lands in output_dir."""
        from zero_models.codegen.coordinator import GenerationCoordinator
        from zero_models.codegen.pipeline import GenerationPipeline

        flags = MigrationFeatureFlags(enable_canary_testing=True, force_canary_mode=True)
        adapter = MigrationAdapter(
            run_options, feature_flags=flags,
            legacy_factory=lambda options: GenerationCoordinator(options, introspector=introspector),
            new_factory=lambda options: GenerationPipeline(options, introspector=introspector),
        )
        outcome = adapter.generate()
        assert outcome.statistics["migration"]["canary_match"], adapter.last_comparison.report()
        assert (output_dir / "index.ts").exists()


class TestForceExecute:
    def test_force_new(self, legacy, new):
        outcome = adapter_for(legacy, new).force_execute("new")
        assert outcome.pipeline == "new"
        assert outcome.statistics["migration"]["forced"] is True

    def test_unknown_system(self, legacy, new):
        with pytest.raises(ValueError, match="Unknown system"):
            adapter_for(legacy, new).force_execute("other")

    def test_open_breaker_blocks_new(self, legacy, new):
        adapter = adapter_for(legacy, new)
        adapter.feature_flags.trip_circuit_breaker()
        with pytest.raises(MigrationError, match="Circuit breaker is open"):
            adapter.force_execute("new")
        assert adapter.force_execute("new", bypass_circuit_breaker=True).pipeline == "new"

    def test_status(self, legacy, new):
        adapter = adapter_for(legacy, new)
        adapter.force_execute("legacy")
        status = adapter.status()
        assert status["migration_adapter_stats"]["executions_legacy"] == 1
        assert status["circuit_breaker_state"] == "closed"
        assert status["rollback"] is None
