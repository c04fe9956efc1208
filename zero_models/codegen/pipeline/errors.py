"""
Pipeline error types.

StageError wraps whatever a stage raised together with the stage name,
a snapshot of the context at failure time and a coarse classification
callers can use to decide whether a retry is worthwhile.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..core.config import ConfigurationError
from ..core.context import ContextValidationError
from ..core.generator import GeneratorError
from ..core.schema_service import SchemaValidationError
from ..core.templates import TemplateError


class ErrorCategory(Enum):
    VALIDATION = "validation"
    IO = "io"
    TEMPLATE = "template"
    DATA = "data"
    PROCESSING = "processing"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


VALIDATION_ERRORS = (ContextValidationError, SchemaValidationError, ConfigurationError,
                     TypeError, ValueError)
DATA_KEYWORDS = ("missing", "not found", "undefined", "empty", "required", "blank")
PROCESSING_KEYWORDS = ("failed to process", "processing error", "transformation failed",
                       "generation failed")


def categorize(error: Optional[BaseException]) -> ErrorCategory:
    """Classify an exception raised inside a stage."""
    if error is None:
        return ErrorCategory.UNKNOWN
    if isinstance(error, GeneratorError) and error.__cause__ is not None:
        return categorize(error.__cause__)
    if isinstance(error, TemplateError):
        return ErrorCategory.TEMPLATE
    if isinstance(error, (OSError, TimeoutError)):
        return ErrorCategory.IO
    if isinstance(error, LookupError):
        return ErrorCategory.DATA

    message = str(error).lower()
    if isinstance(error, VALIDATION_ERRORS) or "validation" in message or "invalid" in message:
        return ErrorCategory.VALIDATION
    if any(k in message for k in DATA_KEYWORDS):
        return ErrorCategory.DATA
    if any(k in message for k in PROCESSING_KEYWORDS):
        return ErrorCategory.PROCESSING
    return ErrorCategory.UNKNOWN


class StageError(GeneratorError):
    """A stage failed while processing a context."""

    def __init__(self, stage_name: str, message: str,
                 original_error: Optional[BaseException] = None,
                 context: Optional[Any] = None):
        super().__init__(f"Stage '{stage_name}' failed: {message}")
        self.stage_name = stage_name
        self.original_error = original_error
        self.context_snapshot: Dict[str, Any] = self._snapshot(context)
        self.category = categorize(original_error)

    @staticmethod
    def _snapshot(context: Optional[Any]) -> Dict[str, Any]:
        if context is None:
            return {}
        to_dict = getattr(context, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        if isinstance(context, Mapping):
            return dict(context)
        return {"context": repr(context)}

    @property
    def table_name(self) -> Optional[str]:
        return self.context_snapshot.get("table_name")

    @property
    def recoverable(self) -> bool:
        """Transient I/O and missing-data failures may succeed on a rerun."""
        return self.category in (ErrorCategory.IO, ErrorCategory.DATA)

    @property
    def severity(self) -> ErrorSeverity:
        if self.recoverable:
            return ErrorSeverity.LOW
        if self.category in (ErrorCategory.VALIDATION, ErrorCategory.TEMPLATE):
            return ErrorSeverity.MEDIUM
        if self.category == ErrorCategory.PROCESSING:
            return ErrorSeverity.HIGH
        return ErrorSeverity.CRITICAL

    def error_report(self) -> Dict[str, Any]:
        original = self.original_error
        return {
            "stage": self.stage_name,
            "message": str(self),
            "category": self.category.value,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "table_name": self.table_name,
            "original_error": {
                "type": type(original).__name__,
                "message": str(original),
            } if original is not None else None,
            "context": self.context_snapshot,
        }


class StageValidationError(StageError):
    """A stage produced or received an invalid context."""

    def __init__(self, stage_name: str, message: str, context: Optional[Any] = None):
        super().__init__(stage_name, message, context=context)
        self.category = ErrorCategory.VALIDATION


class PipelineError(GeneratorError):
    """The pipeline itself is misconfigured."""

    pass
