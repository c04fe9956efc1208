"""
Base class for pipeline stages.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from ..core.context import GenerationContext
from .errors import StageValidationError


class Stage(ABC):
    """
    One transformation step in the generation pipeline.

    A stage receives a context and returns a new one; it never mutates its
    input. ``can_run`` lets a stage opt out for a given context, in which
    case the pipeline passes the context through unchanged.
    """

    #: Documents where the stage belongs; pipelines run stages in list order.
    priority: int = 100
    #: Running the stage twice on its own output changes nothing.
    idempotent: bool = True

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def description(self) -> str:
        doc = type(self).__doc__
        return doc.strip().splitlines()[0] if doc else ""

    def can_run(self, context: GenerationContext) -> bool:
        return True

    @abstractmethod
    def process(self, context: GenerationContext) -> GenerationContext:
        """Return a new context with this stage's work applied."""
        pass

    def validate_output(self, context: Any) -> GenerationContext:
        if not isinstance(context, GenerationContext):
            raise StageValidationError(
                self.name, f"returned {type(context).__name__}, expected GenerationContext"
            )
        return context

    def add_stage_metadata(self, context: GenerationContext, **values: Any) -> GenerationContext:
        """Record values under this stage's name in the context metadata."""
        existing: Dict[str, Any] = dict(context.metadata.get(self.name) or {})
        existing.update(values)
        return context.with_metadata(**{self.name: existing})

    def __repr__(self) -> str:
        return f"<{self.name} priority={self.priority}>"
