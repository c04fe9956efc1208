"""
TypeScript generator for Zero ActiveRecord-style models.
"""

from .defaults import DefaultValueConverter
from .generator import TypeScriptModelGenerator
from .polymorphic import PolymorphicConfigLoader, PolymorphicModelAnalyzer
from .relationships import RelationshipProcessor
from .types import TypeMapper

__all__ = [
    "DefaultValueConverter",
    "PolymorphicConfigLoader",
    "PolymorphicModelAnalyzer",
    "RelationshipProcessor",
    "TypeMapper",
    "TypeScriptModelGenerator",
]
