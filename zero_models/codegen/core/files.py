"""
File output for generated models.

SemanticComparator decides whether new content differs from what is on
disk once timestamps and whitespace are ignored. FileManager writes
through that gate and batches formatter invocations.
"""

import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ...logging_config import get_logger
from .config import DEFAULT_IGNORED_LINE_PATTERNS

logger = get_logger(__name__)

FORMATTABLE_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".json"}


class SemanticComparator:
    """Compare file contents ignoring generated timestamps and whitespace."""

    def __init__(self, ignored_line_patterns: Optional[Iterable[str]] = None):
        patterns = DEFAULT_IGNORED_LINE_PATTERNS if ignored_line_patterns is None else ignored_line_patterns
        self.patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    def normalize(self, content: str) -> str:
        lines = []
        for line in content.splitlines():
            if any(p.match(line) for p in self.patterns):
                continue
            collapsed = re.sub(r"\s+", " ", line.strip())
            if collapsed:
                lines.append(collapsed)
        return "\n".join(lines).strip()

    def equivalent(self, left: str, right: str) -> bool:
        return self.normalize(left) == self.normalize(right)

    def file_identical(self, path: Union[str, Path], content: str) -> bool:
        """True when ``path`` exists and is semantically equal to ``content``."""
        path = Path(path)
        try:
            existing = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return False
        return self.equivalent(existing, content)


@dataclass(frozen=True)
class WriteResult:
    """Outcome of writing one file."""

    path: Path
    relative_path: str
    outcome: str
    content: str = ""
    error: Optional[str] = None


class FormatterError(Exception):
    """Raised when the external formatter fails."""

    pass


class Formatter:
    """Runs an external formatter command over a directory."""

    def __init__(self, command: List[str], cwd: Optional[Path] = None, timeout: int = 120):
        self.command = list(command)
        self.cwd = cwd
        self.timeout = timeout

    def available(self) -> bool:
        return bool(self.command) and shutil.which(self.command[0]) is not None

    def run(self, target: Path) -> None:
        """
        Format every file under ``target`` in place.

        Raises:
            FormatterError: Non-zero exit, timeout or missing executable
        """
        cwd = self.cwd if self.cwd and self.cwd.is_dir() else None
        try:
            completed = subprocess.run(
                [*self.command, str(target)],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise FormatterError(f"Formatter timed out after {self.timeout}s") from e
        except OSError as e:
            raise FormatterError(f"Formatter could not be started: {e}") from e

        if completed.returncode != 0:
            raise FormatterError(
                f"Formatter exited with {completed.returncode}: {completed.stderr.strip()}"
            )


class FileManager:
    """
    Write generated files below a base directory.

    Writes pass through the semantic gate unless ``force`` is set. Deferred
    writes are queued and formatted together by :meth:`process_batch_files`.
    """

    def __init__(self, base_dir: Union[str, Path],
                 comparator: Optional[SemanticComparator] = None,
                 formatter: Optional[Formatter] = None,
                 dry_run: bool = False,
                 force: bool = False,
                 enable_formatting: bool = True,
                 create_directories: bool = True,
                 batch_max_files: int = 100,
                 batch_max_memory_mb: int = 100):
        self.base_dir = Path(base_dir)
        self.comparator = comparator or SemanticComparator()
        self.formatter = formatter
        self.dry_run = dry_run
        self.force = force
        self.enable_formatting = enable_formatting
        self.create_directories = create_directories
        self.batch_max_files = batch_max_files
        self.batch_max_memory_bytes = batch_max_memory_mb * 1024 * 1024

        self._batch: Dict[str, str] = {}
        self._batch_memory = 0
        self._formatter_checked: Optional[bool] = None
        self.results: List[WriteResult] = []
        self._stats = {"created": 0, "updated": 0, "identical": 0, "skipped": 0,
                       "errors": 0, "directories_created": 0, "batches": 0}

    # Public API

    def write_with_formatting(self, relative_path: str, content: str,
                              format: bool = True, defer_write: bool = False) -> Path:
        """
        Write ``content`` to ``relative_path`` below the base directory.

        Args:
            relative_path: Path relative to the base directory
            content: File content
            format: Run the formatter when the extension supports it
            defer_write: Queue the file for the next batch instead of writing now

        Returns:
            Absolute path of the target file
        """
        target = self._absolute(relative_path)

        if defer_write and not self.dry_run:
            self._queue(relative_path, content)
            return target

        if format and self._should_format(relative_path):
            content = self._format_contents({relative_path: content})[relative_path]
        self._write(relative_path, content)
        return target

    def process_batch_files(self) -> List[WriteResult]:
        """Format and write every queued file. Returns the results for this batch."""
        if not self._batch:
            return []

        batch = self._batch
        self._batch = {}
        self._batch_memory = 0
        self._stats["batches"] += 1
        logger.debug("Processing batch of %d files", len(batch))

        formattable = {p: c for p, c in batch.items() if self._should_format(p)}
        formatted = self._format_contents(formattable) if formattable else {}

        start = len(self.results)
        for relative_path, content in batch.items():
            self._write(relative_path, formatted.get(relative_path, content))
        return self.results[start:]

    @property
    def pending_count(self) -> int:
        return len(self._batch)

    @property
    def errors(self) -> List[WriteResult]:
        return [r for r in self.results if r.outcome == "error"]

    def statistics(self) -> Dict[str, int]:
        return dict(self._stats)

    # Internals

    def _absolute(self, relative_path: str) -> Path:
        return (self.base_dir / relative_path).resolve()

    def _queue(self, relative_path: str, content: str) -> None:
        estimated = int(len(content.encode("utf-8")) * 1.5)
        if self._batch and self._batch_memory + estimated > self.batch_max_memory_bytes:
            logger.debug("Batch memory limit reached, flushing %d files", len(self._batch))
            self.process_batch_files()

        self._batch[relative_path] = content
        self._batch_memory += estimated

        if len(self._batch) >= self.batch_max_files:
            logger.debug("Batch size limit reached, flushing %d files", len(self._batch))
            self.process_batch_files()

    def _should_format(self, relative_path: str) -> bool:
        if not self.enable_formatting or self.formatter is None or self.dry_run:
            return False
        if Path(relative_path).suffix not in FORMATTABLE_EXTENSIONS:
            return False
        if self._formatter_checked is None:
            self._formatter_checked = self.formatter.available()
            if not self._formatter_checked:
                logger.warning("Formatter %s not found, writing unformatted output",
                               self.formatter.command[0] if self.formatter.command else "<none>")
        return self._formatter_checked

    def _format_contents(self, contents: Dict[str, str]) -> Dict[str, str]:
        """Format all contents with one formatter run in a scratch directory."""
        with tempfile.TemporaryDirectory(prefix="zero-models-") as scratch:
            scratch_dir = Path(scratch)
            for relative_path, content in contents.items():
                path = scratch_dir / relative_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")

            try:
                self.formatter.run(scratch_dir)
            except FormatterError as e:
                logger.warning("Formatting failed, using unformatted output: %s", e)
                return dict(contents)

            formatted = {}
            for relative_path, content in contents.items():
                try:
                    formatted[relative_path] = (scratch_dir / relative_path).read_text(encoding="utf-8")
                except OSError as e:
                    logger.warning("Could not read formatted %s: %s", relative_path, e)
                    formatted[relative_path] = content
            return formatted

    def _write(self, relative_path: str, content: str) -> WriteResult:
        target = self._absolute(relative_path)

        if self.dry_run:
            result = WriteResult(target, relative_path, "skipped", content)
            self._stats["skipped"] += 1
            logger.info("Dry run: would write %s", relative_path)
            self.results.append(result)
            return result

        exists = target.exists()
        if exists and not self.force and self.comparator.file_identical(target, content):
            result = WriteResult(target, relative_path, "identical", content)
            self._stats["identical"] += 1
            logger.debug("Unchanged: %s", relative_path)
            self.results.append(result)
            return result

        try:
            if not target.parent.exists():
                if not self.create_directories:
                    raise FileNotFoundError(f"Directory does not exist: {target.parent}")
                target.parent.mkdir(parents=True, exist_ok=True)
                self._stats["directories_created"] += 1
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.error("Failed to write %s: %s", target, e)
            result = WriteResult(target, relative_path, "error", content, str(e))
            self._stats["errors"] += 1
            self.results.append(result)
            return result

        outcome = "updated" if exists else "created"
        self._stats[outcome] += 1
        logger.info("%s %s", outcome.capitalize(), relative_path)
        result = WriteResult(target, relative_path, outcome, content)
        self.results.append(result)
        return result
