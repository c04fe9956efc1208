"""
Language-specific code generators.

Only TypeScript is generated today.
"""

from .typescript import TypeScriptModelGenerator

__all__ = ["TypeScriptModelGenerator"]
