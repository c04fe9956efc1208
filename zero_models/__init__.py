"""
zero_models - TypeScript model generation for Zero reactive sync.

Reads a Rails schema snapshot and emits ActiveRecord-style TypeScript
model files, data interfaces and a barrel index.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
