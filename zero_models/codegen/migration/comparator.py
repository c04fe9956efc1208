"""
Compare legacy and new pipeline results during canary runs.
"""

import hashlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from ...logging_config import get_logger
from ..core.files import SemanticComparator
from ..core.generator import GenerationResult

logger = get_logger(__name__)

CRITICAL = "critical"
WARNING = "warning"
INFO = "info"

DEFAULT_COMPARATOR_CONFIG: Dict[str, Any] = {
    "performance_tolerance_ms": 50,
    "performance_regression_threshold": 1.5,
    "compare_file_checksums": True,
    "ignore_whitespace_differences": False,
    "ignore_timestamps": True,
    "acceptable_model_count_difference": 0,
    "acceptable_file_count_difference": 0,
    "max_file_size_for_content_comparison": 10 * 1024 * 1024,
}


@dataclass(frozen=True)
class Discrepancy:
    type: str
    severity: str
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class ComparisonResult:
    """Everything found while comparing two runs."""

    discrepancies: List[Discrepancy] = field(default_factory=list)
    file_comparisons: List[Dict[str, Any]] = field(default_factory=list)
    model_comparisons: List[Dict[str, Any]] = field(default_factory=list)
    performance_analysis: Dict[str, Any] = field(default_factory=dict)

    def add(self, type_: str, severity: str, message: str, **details: Any) -> None:
        self.discrepancies.append(Discrepancy(type_, severity, message, details))

    def _of(self, severity: str) -> List[Discrepancy]:
        return [d for d in self.discrepancies if d.severity == severity]

    @property
    def critical_discrepancies(self) -> List[Discrepancy]:
        return self._of(CRITICAL)

    @property
    def warning_discrepancies(self) -> List[Discrepancy]:
        return self._of(WARNING)

    @property
    def info_discrepancies(self) -> List[Discrepancy]:
        return self._of(INFO)

    @property
    def overall_match(self) -> bool:
        return not self.critical_discrepancies and not any(
            d.type == "comparison_error" for d in self.discrepancies
        )

    def report(self) -> str:
        return render_report(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_match": self.overall_match,
            "discrepancies": [
                {"type": d.type, "severity": d.severity, "message": d.message}
                for d in self.discrepancies
            ],
            "file_comparisons": list(self.file_comparisons),
            "model_comparisons": list(self.model_comparisons),
            "performance_analysis": dict(self.performance_analysis),
        }


class OutputComparator:
    """Compare two GenerationResults for behavioural equivalence."""

    def __init__(self, **config: Any):
        unknown = set(config) - set(DEFAULT_COMPARATOR_CONFIG)
        if unknown:
            raise ValueError(f"Unknown comparator settings: {', '.join(sorted(unknown))}")
        self.config: Dict[str, Any] = {**DEFAULT_COMPARATOR_CONFIG, **config}
        self._semantic = SemanticComparator()

    def compare(self, legacy: GenerationResult, new: GenerationResult) -> ComparisonResult:
        """Compare two runs. Errors during comparison become a ``comparison_error`` discrepancy."""
        result = ComparisonResult()
        try:
            self._compare_success(legacy, new, result)
            self._compare_counts(legacy, new, result)
            self._compare_errors(legacy, new, result)
            self._compare_models(legacy, new, result)
            self._compare_files(legacy, new, result)
            self._analyze_performance(legacy, new, result)
        except (AttributeError, TypeError, ValueError, KeyError) as e:
            logger.error("Comparison failed: %s", e)
            result.add("comparison_error", CRITICAL, f"Comparison failed: {e}", error=type(e).__name__)

        if result.overall_match:
            logger.debug("Canary comparison matched")
        else:
            logger.warning("Canary comparison found %d critical discrepancies",
                           len(result.critical_discrepancies))
        return result

    # Individual checks

    def _compare_success(self, legacy: GenerationResult, new: GenerationResult,
                         result: ComparisonResult) -> None:
        if legacy.success != new.success:
            result.add("success_status", CRITICAL,
                       f"Success status differs: legacy={legacy.success}, new={new.success}",
                       legacy_errors=list(legacy.errors), new_errors=list(new.errors))

    def _compare_counts(self, legacy: GenerationResult, new: GenerationResult,
                        result: ComparisonResult) -> None:
        checks = (
            ("model_count", legacy.model_count, new.model_count,
             self.config["acceptable_model_count_difference"]),
            ("file_count", legacy.file_count, new.file_count,
             self.config["acceptable_file_count_difference"]),
        )
        for type_, old, current, tolerance in checks:
            if abs(old - current) > tolerance:
                label = type_.replace("_", " ").capitalize()
                result.add(type_, CRITICAL, f"{label} differs: legacy={old}, new={current}")

    def _compare_errors(self, legacy: GenerationResult, new: GenerationResult,
                        result: ComparisonResult) -> None:
        only_legacy = sorted(set(legacy.errors) - set(new.errors))
        only_new = sorted(set(new.errors) - set(legacy.errors))
        if only_legacy or only_new:
            result.add("error_list", CRITICAL,
                       f"Error lists differ: {len(only_legacy)} only in legacy, {len(only_new)} only in new",
                       legacy_only=only_legacy, new_only=only_new)

    def _compare_models(self, legacy: GenerationResult, new: GenerationResult,
                        result: ComparisonResult) -> None:
        legacy_models = {m.table_name: m for m in legacy.generated_models}
        new_models = {m.table_name: m for m in new.generated_models}

        for table in sorted(set(legacy_models) | set(new_models)):
            old, current = legacy_models.get(table), new_models.get(table)
            if old is None or current is None:
                side = "legacy" if current is None else "new"
                result.model_comparisons.append({"table_name": table, "matches": False})
                result.add("model_structure", CRITICAL, f"Model for {table} only generated by {side}")
                continue

            matches = (old.model_name, old.kebab_name) == (current.model_name, current.kebab_name)
            result.model_comparisons.append({"table_name": table, "matches": matches})
            if not matches:
                result.add("model_structure", CRITICAL,
                           f"Model structure differs for {table}: "
                           f"legacy={old.model_name}/{old.kebab_name}, "
                           f"new={current.model_name}/{current.kebab_name}")

    def _compare_files(self, legacy: GenerationResult, new: GenerationResult,
                       result: ComparisonResult) -> None:
        legacy_files = legacy.file_contents()
        new_files = new.file_contents()

        for path in sorted(set(legacy_files) | set(new_files)):
            if path not in new_files or path not in legacy_files:
                side = "legacy" if path not in new_files else "new"
                result.file_comparisons.append({"path": path, "matches": False, "comparison_type": "missing"})
                result.add("file_content", CRITICAL, f"File {path} only generated by {side}")
                continue

            comparison = self.compare_content(legacy_files[path], new_files[path])
            comparison["path"] = path
            result.file_comparisons.append(comparison)
            if not comparison["matches"]:
                result.add("file_content", CRITICAL, f"File content differs: {path}")

    def _analyze_performance(self, legacy: GenerationResult, new: GenerationResult,
                             result: ComparisonResult) -> None:
        legacy_ms = legacy.execution_time * 1000
        new_ms = new.execution_time * 1000
        difference = new_ms - legacy_ms
        tolerance = self.config["performance_tolerance_ms"]

        result.performance_analysis = {
            "legacy_time_ms": round(legacy_ms, 3),
            "new_time_ms": round(new_ms, 3),
            "performance_difference_ms": round(abs(difference), 3),
            "legacy_faster": legacy_ms < new_ms,
            "new_faster": new_ms < legacy_ms,
            "within_tolerance": abs(difference) <= tolerance,
        }

        ratio = (new_ms / legacy_ms) if legacy_ms > 0 else float("inf") if new_ms > 0 else 1.0
        if difference > tolerance and ratio > self.config["performance_regression_threshold"]:
            result.add("performance_regression", WARNING,
                       f"New pipeline {round(difference)}ms slower than legacy "
                       f"({ratio:.2f}x)", ratio=ratio)

    # Content comparison

    def normalize(self, content: str) -> str:
        if self.config["ignore_timestamps"]:
            content = self._semantic.normalize(content)
        if self.config["ignore_whitespace_differences"]:
            content = re.sub(r"\s+", " ", content).strip()
        return content

    def compare_content(self, legacy: str, new: str) -> Dict[str, Any]:
        limit = self.config["max_file_size_for_content_comparison"]
        legacy_size, new_size = len(legacy.encode("utf-8")), len(new.encode("utf-8"))
        if max(legacy_size, new_size) > limit:
            return {
                "matches": legacy_size == new_size,
                "comparison_type": "size_only",
                "legacy_size": legacy_size,
                "new_size": new_size,
            }

        left, right = self.normalize(legacy), self.normalize(new)
        if self.config["compare_file_checksums"]:
            left_sum = hashlib.sha256(left.encode("utf-8")).hexdigest()
            right_sum = hashlib.sha256(right.encode("utf-8")).hexdigest()
            return {"matches": left_sum == right_sum, "comparison_type": "checksum",
                    "legacy_checksum": left_sum, "new_checksum": right_sum}
        return {"matches": left == right, "comparison_type": "content"}

    def compare_files_at_path(self, legacy_path: Union[str, Path], new_path: Union[str, Path]) -> Dict[str, Any]:
        """Compare two files on disk."""
        try:
            legacy = Path(legacy_path).read_text(encoding="utf-8")
            new = Path(new_path).read_text(encoding="utf-8")
        except OSError as e:
            return {"matches": False, "error": f"Could not read files: {e}"}

        left, right = self.normalize(legacy), self.normalize(new)
        return {"matches": left == right, "comparison_type": "content"}

    def generate_report(self, result: ComparisonResult) -> str:
        return render_report(result)


def render_report(result: ComparisonResult) -> str:
    """Markdown summary of a comparison."""
    lines = ["# Canary Test Comparison Report", ""]
    status = "MATCH" if result.overall_match else "DISCREPANCIES DETECTED"
    lines.append(f"OVERALL STATUS: {status}")
    lines.append("")
    lines.append("## Summary")
    lines.append(f"Critical discrepancies: {len(result.critical_discrepancies)}")
    lines.append(f"Warnings: {len(result.warning_discrepancies)}")
    lines.append(f"Info: {len(result.info_discrepancies)}")
    lines.append(f"Files compared: {len(result.file_comparisons)}")
    lines.append(f"Models compared: {len(result.model_comparisons)}")

    if result.discrepancies:
        lines.extend(["", "## Discrepancies"])
        for d in result.discrepancies:
            lines.append(f"- [{d.severity.upper()}] {d.type}: {d.message}")

    perf = result.performance_analysis
    if perf:
        lines.extend(["", "## Performance Analysis"])
        lines.append(f"Legacy execution time: {perf['legacy_time_ms']:.1f}ms")
        lines.append(f"New execution time: {perf['new_time_ms']:.1f}ms")
        lines.append(f"Difference: {perf['performance_difference_ms']:.1f}ms")
        lines.append(f"Within tolerance: {'yes' if perf['within_tolerance'] else 'no'}")

    return "\n".join(lines) + "\n"
