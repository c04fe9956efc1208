"""
Naming utilities for TypeScript model generation.

Handles the Rails-style inflections the generator relies on (table name
to model name, model name to file name) plus sanitization of property
names against TypeScript reserved words.
"""

import re
from typing import Dict, List, Optional, Set, Tuple
from enum import Enum


class NamingCase(Enum):
    """Different naming case styles."""
    SNAKE_CASE = "snake"      # job_target
    CAMEL_CASE = "camel"      # jobTarget
    PASCAL_CASE = "pascal"    # JobTarget
    KEBAB_CASE = "kebab"      # job-target


UNCOUNTABLE_WORDS: Set[str] = {
    "equipment", "information", "rice", "money", "species", "series",
    "fish", "sheep", "jeans", "police", "metadata",
}

IRREGULAR_SINGULARS: Dict[str, str] = {
    "people": "person",
    "men": "man",
    "women": "woman",
    "children": "child",
    "sexes": "sex",
    "moves": "move",
    "zombies": "zombie",
}

# Evaluated in order, first match wins.
SINGULAR_RULES: List[Tuple[str, str]] = [
    (r"(database)s$", r"\1"),
    (r"(quiz)zes$", r"\1"),
    (r"(matr)ices$", r"\1ix"),
    (r"(vert|ind)ices$", r"\1ex"),
    (r"^(ox)en$", r"\1"),
    (r"(alias|status)(es)?$", r"\1"),
    (r"(octop|vir)(us|i)$", r"\1us"),
    (r"^(a)x[ie]s$", r"\1xis"),
    (r"(cris|test)(is|es)$", r"\1is"),
    (r"(shoe)s$", r"\1"),
    (r"(o)es$", r"\1"),
    (r"(bus)(es)?$", r"\1"),
    (r"^(m|l)ice$", r"\1ouse"),
    (r"(x|ch|ss|sh)es$", r"\1"),
    (r"(m)ovies$", r"\1ovie"),
    (r"(s)eries$", r"\1eries"),
    (r"([^aeiouy]|qu)ies$", r"\1y"),
    (r"([lr])ves$", r"\1f"),
    (r"(tive)s$", r"\1"),
    (r"(hive)s$", r"\1"),
    (r"([^f])ves$", r"\1fe"),
    (r"^(analy)(sis|ses)$", r"\1sis"),
    (r"((a)naly|(b)a|(d)iagno|(p)arenthe|(p)rogno|(s)ynop|(t)he)(sis|ses)$", r"\1sis"),
    (r"([ti])a$", r"\1um"),
    (r"(n)ews$", r"\1ews"),
    (r"(ss)$", r"\1"),
    (r"s$", ""),
]

_SINGULAR_PATTERNS = [(re.compile(p, re.IGNORECASE), r) for p, r in SINGULAR_RULES]


def singularize_word(word: str) -> str:
    """Singularize a single lowercase word."""
    lowered = word.lower()
    if not lowered or lowered in UNCOUNTABLE_WORDS:
        return word
    if lowered in IRREGULAR_SINGULARS:
        return IRREGULAR_SINGULARS[lowered]

    for pattern, replacement in _SINGULAR_PATTERNS:
        if pattern.search(word):
            return pattern.sub(replacement, word, count=1)
    return word


def singularize(name: str) -> str:
    """
    Singularize a snake_case name.

    Only the last segment is inflected, so ``job_people`` becomes
    ``job_person`` and ``activity_logs`` becomes ``activity_log``.
    """
    head, sep, last = name.rpartition("_")
    return f"{head}{sep}{singularize_word(last)}"


def underscore(name: str) -> str:
    """Convert a CamelCase or kebab-case name to snake_case."""
    name = name.replace("-", "_").replace("::", "/")
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", name)
    return re.sub(r"_+", "_", name).lower()


def camelize(name: str, uppercase_first: bool = True) -> str:
    """
    Convert a snake_case name to CamelCase.

    Args:
        name: snake_case input
        uppercase_first: When False produce lowerCamelCase

    Returns:
        Camelized name
    """
    parts = [p for p in name.split("_") if p]
    if not parts:
        return name
    head = parts[0].capitalize() if uppercase_first else parts[0].lower()
    return head + "".join(p.capitalize() for p in parts[1:])


def dasherize(name: str) -> str:
    """Replace underscores with hyphens."""
    return name.replace("_", "-")


def model_name_for_table(table_name: str) -> str:
    """Rails model name for a table, e.g. ``job_targets`` -> ``JobTarget``."""
    return camelize(singularize(table_name))


def kebab_name_for_table(table_name: str) -> str:
    """File stem for a table, e.g. ``job_targets`` -> ``job-target``."""
    return dasherize(underscore(model_name_for_table(table_name)))


def property_name(association_name: str) -> str:
    """TypeScript property name for an association, e.g. ``job_targets`` -> ``jobTargets``."""
    return camelize(association_name, uppercase_first=False)


class NameSanitizer:
    """Handles name sanitization and case conversion."""

    def __init__(self, reserved_words: Optional[Set[str]] = None):
        """
        Initialize name sanitizer.

        Args:
            reserved_words: Set of language reserved words
        """
        self.reserved_words = reserved_words or set()
        self._name_cache: Dict[str, str] = {}

    def sanitize_name(self, name: str, target_case: NamingCase = NamingCase.CAMEL_CASE,
                      suffix_on_conflict: str = "_") -> str:
        """
        Sanitize a name for safe use as a TypeScript identifier.

        Args:
            name: Original name to sanitize
            target_case: Desired case style
            suffix_on_conflict: Suffix appended when the name is reserved

        Returns:
            Sanitized name
        """
        cache_key = f"{name}_{target_case.value}_{suffix_on_conflict}"
        if cache_key in self._name_cache:
            return self._name_cache[cache_key]

        # Step 1: Basic cleanup
        cleaned = self._clean_basic(name)

        # Step 2: Convert to target case
        converted = self._convert_case(cleaned, target_case)

        # Step 3: Reserved words and leading digits
        if converted in self.reserved_words:
            converted = f"{converted}{suffix_on_conflict}"
        if converted[:1].isdigit():
            converted = f"_{converted}"

        self._name_cache[cache_key] = converted
        return converted

    def _clean_basic(self, name: str) -> str:
        """Basic name cleanup - remove invalid characters."""
        cleaned = re.sub(r"[^a-zA-Z0-9_-]", "_", name)
        cleaned = cleaned.strip("_-")
        return cleaned or "field"

    def _convert_case(self, name: str, target_case: NamingCase) -> str:
        """Convert name to target case style."""
        snake = underscore(name)
        if target_case == NamingCase.SNAKE_CASE:
            return snake
        elif target_case == NamingCase.CAMEL_CASE:
            return camelize(snake, uppercase_first=False)
        elif target_case == NamingCase.PASCAL_CASE:
            return camelize(snake)
        elif target_case == NamingCase.KEBAB_CASE:
            return dasherize(snake)
        return name


TYPESCRIPT_RESERVED_WORDS: Set[str] = {
    "break", "case", "catch", "class", "const", "continue", "debugger",
    "default", "delete", "do", "else", "enum", "export", "extends", "false",
    "finally", "for", "function", "if", "import", "in", "instanceof", "new",
    "null", "return", "super", "switch", "this", "throw", "true", "try",
    "typeof", "var", "void", "while", "with",
}


def create_typescript_sanitizer() -> NameSanitizer:
    """Create a name sanitizer configured for TypeScript."""
    return NameSanitizer(TYPESCRIPT_RESERVED_WORDS)
