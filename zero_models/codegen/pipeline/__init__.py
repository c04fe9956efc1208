"""
Staged generation pipeline.
"""

from .errors import ErrorCategory, ErrorSeverity, PipelineError, StageError, StageValidationError
from .generation import GenerationPipeline
from .pipeline import Pipeline
from .stage import Stage
from .stages import FileWritingStage, ModelGenerationStage, SchemaAnalysisStage, ValidationStage

__all__ = [
    "ErrorCategory",
    "ErrorSeverity",
    "FileWritingStage",
    "GenerationPipeline",
    "ModelGenerationStage",
    "Pipeline",
    "PipelineError",
    "SchemaAnalysisStage",
    "Stage",
    "StageError",
    "StageValidationError",
    "ValidationStage",
]
