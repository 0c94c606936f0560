"""
Transactional Edit Executor - All-or-nothing edits of a single file.

A transaction moves through these states:

    started -> validated -> applying -> committed
    started -> validated -> applying -> rolled_back
    started -> rejected

Validation resolves every operation against an in-memory copy, each one
against the result of the previous ones. Nothing on disk changes until
every operation has resolved. The file is then written once, atomically,
after checking it still matches the pre-image captured at the start.

The file on disk therefore always equals either the fully edited content
or the exact pre-image.
"""

import difflib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from fileagent.errors import AmbiguousMatch, InvalidArguments, IOFailure, NoMatch, ToolError
from fileagent.types import EditOperation, MatchOccurrence

logger = logging.getLogger(__name__)

MAX_OPERATIONS = 50
DIFF_PREVIEW_LINES = 40
SNIPPET_CHARS = 80
NEW_FILE_MODE = 0o644


class TransactionState(str, Enum):
    STARTED = "started"
    VALIDATED = "validated"
    APPLYING = "applying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"


@dataclass
class EditReport:
    """Outcome of a committed transaction."""
    path: Path
    replacements: list[int]
    line_delta: int
    size_before: int
    size_after: int
    diff_preview: str
    warnings: list[str] = field(default_factory=list)

    @property
    def total_replacements(self) -> int:
        return sum(self.replacements)

    def render(self) -> str:
        lines = [
            f"Successfully applied {len(self.replacements)} edit(s) to: {self.path}",
            f"Total replacements made: {self.total_replacements}",
            "",
            "Edit Results:",
        ]
        for i, count in enumerate(self.replacements, start=1):
            lines.append(f"  - Edit #{i}: {count} replacement{'' if count == 1 else 's'}")
        lines.append("")
        lines.append("File Statistics:")
        lines.append(f"  - Lines: {self.line_delta:+d}")
        lines.append(
            f"  - Size: {self.size_before} -> {self.size_after} bytes "
            f"({self.size_after - self.size_before:+d})"
        )
        for warning in self.warnings:
            lines.append(f"Warning: {warning}")
        if self.diff_preview:
            lines.append("")
            lines.append(self.diff_preview)
        return "\n".join(lines)


def _snippet(text: str) -> str:
    text = text.replace("\n", "\\n")
    if len(text) > SNIPPET_CHARS:
        return text[:SNIPPET_CHARS] + "..."
    return text


def _find_all(content: str, pattern: str) -> list[int]:
    positions = []
    start = content.find(pattern)
    while start != -1:
        positions.append(start)
        start = content.find(pattern, start + 1)
    return positions


def _line_of(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def diff_preview(path: Path, before: str, after: str, max_lines: int = DIFF_PREVIEW_LINES) -> str:
    """Unified diff between two versions of a file, cut to max_lines."""
    diff = list(difflib.unified_diff(
        before.splitlines(),
        after.splitlines(),
        fromfile=f"a/{path.name}",
        tofile=f"b/{path.name}",
        lineterm="",
    ))
    if len(diff) > max_lines:
        omitted = len(diff) - max_lines
        diff = diff[:max_lines] + [f"... ({omitted} more diff lines not shown)"]
    return "\n".join(diff)


def read_exact(path: Path) -> str:
    """Read a file as text without newline translation."""
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def write_atomic(path: Path, content: str) -> None:
    """
    Replace a file's content in one step.

    The new content goes to a temporary file in the same directory which
    is then renamed over the target, so readers never see a partial file.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            shutil.copymode(path, tmp_name)
        else:
            os.chmod(tmp_name, NEW_FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class EditTransaction:
    """
    An ordered list of edit operations against one file.

    Call execute() once. It returns an EditReport on commit and raises a
    ToolError on rejection or rollback; state records where it ended.
    """

    def __init__(
        self,
        path: Path,
        operations: list[EditOperation],
        tool_name: str = "multi_edit",
    ) -> None:
        self.path = Path(path)
        self.operations = list(operations)
        self.tool_name = tool_name
        self.resource_key = f"file:{self.path.resolve()}"
        self.state = TransactionState.STARTED
        self.pre_image: str | None = None
        self.replacements: list[int] = []

    def _error(self, cls: type[ToolError], message: str, step: str) -> ToolError:
        return cls(message, tool_name=self.tool_name, resource_key=self.resource_key, step=step)

    def _reject(self, error: ToolError) -> ToolError:
        self.state = TransactionState.REJECTED
        self.pre_image = None
        logger.warning(f"Edit of {self.path} rejected: {error.message}")
        return error

    def _check_structure(self) -> None:
        if not self.operations:
            raise self._reject(self._error(InvalidArguments, "No edits provided", "structure"))
        if len(self.operations) > MAX_OPERATIONS:
            raise self._reject(self._error(
                InvalidArguments,
                f"Too many edits ({len(self.operations)}). "
                f"Maximum {MAX_OPERATIONS} edits per transaction.",
                "structure",
            ))
        for i, op in enumerate(self.operations, start=1):
            if not op.match_text:
                raise self._reject(self._error(
                    InvalidArguments, f"Edit #{i}: match_text cannot be empty", f"edit #{i}"
                ))
            if op.match_text == op.replacement_text and not (op.context_before or op.context_after):
                raise self._reject(self._error(
                    InvalidArguments,
                    f"Edit #{i}: match_text and replacement_text are identical",
                    f"edit #{i}",
                ))
            if op.nth is not None and op.nth < 1:
                raise self._reject(self._error(
                    InvalidArguments, f"Edit #{i}: nth must be at least 1", f"edit #{i}"
                ))

    def _overlap_warnings(self) -> list[str]:
        warnings = []
        for i, earlier in enumerate(self.operations, start=1):
            for j, later in enumerate(self.operations[i:], start=i + 1):
                if later.match_text in earlier.replacement_text:
                    warnings.append(f"edit #{i} creates text that edit #{j} will modify")
        return warnings

    def _apply_one(self, content: str, op: EditOperation, index: int) -> tuple[str, int]:
        step = f"edit #{index}"
        if op.match_occurrence == MatchOccurrence.ALL:
            count = content.count(op.match_text)
            if count == 0:
                raise self._error(NoMatch, f"match_text not found: '{_snippet(op.match_text)}'", step)
            return content.replace(op.match_text, op.replacement_text), count

        if op.match_occurrence == MatchOccurrence.FIRST:
            position = content.find(op.match_text)
            if position == -1:
                raise self._error(NoMatch, f"match_text not found: '{_snippet(op.match_text)}'", step)
        else:
            pattern = op.context_before + op.match_text + op.context_after
            positions = _find_all(content, pattern)
            if not positions:
                raise self._error(NoMatch, f"match_text not found in context: '{_snippet(pattern)}'", step)
            if op.nth is None and len(positions) > 1:
                lines = ", ".join(str(_line_of(content, p)) for p in positions[:10])
                raise self._error(
                    AmbiguousMatch,
                    f"'{_snippet(pattern)}' found {len(positions)} times (lines {lines}). "
                    "Provide more context, set nth, or replace all occurrences.",
                    step,
                )
            nth = op.nth or 1
            if nth > len(positions):
                raise self._error(
                    NoMatch,
                    f"Occurrence {nth} requested but '{_snippet(pattern)}' occurs {len(positions)} time(s)",
                    step,
                )
            position = positions[nth - 1] + len(op.context_before)

        end = position + len(op.match_text)
        return content[:position] + op.replacement_text + content[end:], 1

    def validate(self) -> str:
        """
        Resolve every operation in memory and return the edited content.

        Moves the transaction to validated, or to rejected and raises.
        """
        self._check_structure()
        try:
            self.pre_image = read_exact(self.path)
        except FileNotFoundError:
            raise self._reject(self._error(
                IOFailure,
                f"File does not exist: {self.path}. Use the write tool to create new files.",
                "read",
            ))
        except (OSError, UnicodeDecodeError) as e:
            raise self._reject(self._error(IOFailure, f"Cannot read {self.path}: {e}", "read"))

        content = self.pre_image
        self.replacements = []
        for i, op in enumerate(self.operations, start=1):
            try:
                content, count = self._apply_one(content, op, i)
            except ToolError as e:
                raise self._reject(e)
            self.replacements.append(count)

        self.state = TransactionState.VALIDATED
        return content

    def _rollback(self, error: ToolError) -> ToolError:
        self.state = TransactionState.ROLLED_BACK
        self.pre_image = None
        logger.error(f"Edit of {self.path} rolled back: {error.message}")
        error.message = f"{error.message}\nAll changes have been rolled back. No modifications made to the file."
        error.args = (error.message,)
        return error

    def execute(self) -> EditReport:
        """Validate, then write the result once. Returns the commit report."""
        new_content = self.validate()
        before = self.pre_image or ""

        self.state = TransactionState.APPLYING
        try:
            current = read_exact(self.path)
        except (OSError, UnicodeDecodeError) as e:
            raise self._rollback(self._error(IOFailure, f"Cannot re-read {self.path}: {e}", "apply"))
        if current != before:
            raise self._rollback(self._error(
                IOFailure, f"{self.path} was modified while the edit was in progress", "apply"
            ))
        try:
            write_atomic(self.path, new_content)
        except OSError as e:
            raise self._rollback(self._error(IOFailure, f"Failed to write {self.path}: {e}", "apply"))

        self.state = TransactionState.COMMITTED
        self.pre_image = None
        report = EditReport(
            path=self.path,
            replacements=list(self.replacements),
            line_delta=new_content.count("\n") - before.count("\n"),
            size_before=len(before.encode("utf-8")),
            size_after=len(new_content.encode("utf-8")),
            diff_preview=diff_preview(self.path, before, new_content),
            warnings=self._overlap_warnings(),
        )
        for warning in report.warnings:
            logger.warning(f"Edit of {self.path}: {warning}")
        logger.info(
            f"Edit committed: {self.path} ({len(self.replacements)} edits, "
            f"{report.total_replacements} replacements)"
        )
        return report


def apply_edits(path: Path, operations: list[EditOperation], tool_name: str = "multi_edit") -> EditReport:
    """Run a transaction over one file and return its report."""
    return EditTransaction(path, operations, tool_name=tool_name).execute()
