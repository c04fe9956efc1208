"""
Immutable stage pipeline.
"""

import time
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, Union

from ...logging_config import get_logger
from ..core.context import GenerationContext
from .errors import PipelineError, StageError
from .stage import Stage

logger = get_logger(__name__)

StageRef = Union[str, Type[Stage]]


class Pipeline:
    """
    An ordered, immutable sequence of stages.

    ``with_stage``, ``without_stage`` and ``replace_stage`` return new
    pipelines. Execution statistics are kept per pipeline instance.
    """

    def __init__(self, stages: Iterable[Stage] = ()):
        stages = tuple(stages)
        for stage in stages:
            if not callable(getattr(stage, "process", None)) or not callable(getattr(stage, "can_run", None)):
                raise PipelineError(f"{stage!r} is not a valid stage (needs process and can_run)")
        self._stages: Tuple[Stage, ...] = stages
        self._stats: Dict[str, Any] = {
            "executions_count": 0,
            "total_execution_time": 0.0,
            "last_execution_time": 0.0,
            "stages_executed": 0,
            "stages_skipped": 0,
            "errors_encountered": 0,
            "stage_errors": {},
        }

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return self._stages

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self._stages]

    def __len__(self) -> int:
        return len(self._stages)

    def _matches(self, stage: Stage, ref: StageRef) -> bool:
        if isinstance(ref, str):
            return stage.name == ref
        return isinstance(stage, ref)

    def has_stage(self, ref: StageRef) -> bool:
        return any(self._matches(s, ref) for s in self._stages)

    def with_stage(self, stage: Stage, position: Optional[int] = None) -> "Pipeline":
        stages = list(self._stages)
        if position is None:
            stages.append(stage)
        else:
            stages.insert(position, stage)
        return Pipeline(stages)

    def without_stage(self, ref: StageRef) -> "Pipeline":
        return Pipeline(s for s in self._stages if not self._matches(s, ref))

    def replace_stage(self, ref: StageRef, new_stage: Stage) -> "Pipeline":
        if not self.has_stage(ref):
            raise PipelineError(f"No stage matching {ref!r} to replace")
        return Pipeline(new_stage if self._matches(s, ref) else s for s in self._stages)

    def execute(self, context: GenerationContext) -> GenerationContext:
        """
        Thread ``context`` through every stage in order.

        Raises:
            StageError: A stage failed; carries stage name and context snapshot
        """
        started = time.perf_counter()
        self._stats["executions_count"] += 1
        try:
            for stage in self._stages:
                context = self._run_stage(stage, context)
        finally:
            elapsed = time.perf_counter() - started
            self._stats["total_execution_time"] += elapsed
            self._stats["last_execution_time"] = elapsed
        return context

    def _run_stage(self, stage: Stage, context: GenerationContext) -> GenerationContext:
        if not stage.can_run(context):
            self._stats["stages_skipped"] += 1
            logger.debug("Skipping stage %s for %s", stage.name, context.table_name)
            return context

        try:
            result = stage.validate_output(stage.process(context))
        except StageError as e:
            self._record_error(stage, e)
            raise
        except Exception as e:
            self._record_error(stage, e)
            raise StageError(stage.name, str(e), original_error=e, context=context) from e

        self._stats["stages_executed"] += 1
        return result

    def _record_error(self, stage: Stage, error: BaseException) -> None:
        self._stats["errors_encountered"] += 1
        errors = self._stats["stage_errors"]
        errors[stage.name] = errors.get(stage.name, 0) + 1
        logger.error("Stage %s failed: %s", stage.name, error)

    def statistics(self) -> Dict[str, Any]:
        runs = self._stats["executions_count"]
        total = self._stats["total_execution_time"]
        return {
            **self._stats,
            "stage_errors": dict(self._stats["stage_errors"]),
            "total_execution_time": round(total, 4),
            "average_execution_time": round(total / runs, 4) if runs else 0.0,
            "last_execution_time": round(self._stats["last_execution_time"], 4),
        }

    def __repr__(self) -> str:
        return f"Pipeline({' -> '.join(self.stage_names)})"
