"""
Gradual migration from the legacy coordinator to the staged pipeline.
"""

from .adapter import MigrationAdapter
from .comparator import ComparisonResult, Discrepancy, OutputComparator
from .flags import (
    CircuitState,
    FlagConfig,
    FlagConfigurationError,
    InvalidPercentageError,
    ManualOverride,
    MigrationError,
    MigrationFeatureFlags,
    get_feature_flags,
    reset_feature_flags,
    set_feature_flags,
)
from .rollback import RollbackManager, RollbackState, RollbackStateError

__all__ = [
    "CircuitState",
    "ComparisonResult",
    "Discrepancy",
    "FlagConfig",
    "FlagConfigurationError",
    "InvalidPercentageError",
    "ManualOverride",
    "MigrationAdapter",
    "MigrationError",
    "MigrationFeatureFlags",
    "OutputComparator",
    "RollbackManager",
    "RollbackState",
    "RollbackStateError",
    "get_feature_flags",
    "reset_feature_flags",
    "set_feature_flags",
]
