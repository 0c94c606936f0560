"""
File Toolset - The concrete tools the controller works with.

Every tool operates on a single workspace root: relative paths resolve
against it. Handlers return raw text and raise ToolError subclasses (or
OSError) on failure; shaping and error conversion happen in the
dispatcher.

Tools:
- ls, glob, find: listings
- grep: regex search (content lines, matching files or counts)
- read: numbered file lines, with offset/limit ranges
- write, edit, multi_edit: file changes, edits go through EditTransaction
- bash: shell commands in the workspace root
- todo_write: the session's todo list
"""

import fnmatch
import logging
import os
import re
import subprocess
import time
from pathlib import Path
from typing import Any

from fileagent.config import ShapingLimits
from fileagent.edits import EditTransaction, write_atomic
from fileagent.errors import InvalidArguments, IOFailure, ToolTimeout
from fileagent.registry import ToolAccess, ToolRegistry
from fileagent.todos import TodoList
from fileagent.types import EditOperation, MatchOccurrence, OutputKind, TodoPriority, TodoStatus

logger = logging.getLogger(__name__)

SKIP_DIRS = {".git"}
MAX_LISTED_DIRS = 20
FIND_DEFAULT_LIMIT = 1000
BINARY_SNIFF_BYTES = 1024
WRITE_PREVIEW_LINES = 10

BASH_DEFAULT_TIMEOUT_MS = 120_000
BASH_MAX_TIMEOUT_MS = 600_000

FORBIDDEN_COMMANDS = [
    "rm -rf /",
    "rm -rf /*",
    ":(){ :|:& };:",
    "mv / /dev/null",
    "dd if=/dev/zero",
    "mkfs",
    "fdisk",
    "format c:",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "init 0",
    "init 6",
    "chmod -R 777 /",
    "chown -R root /",
    "killall -9",
]

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")

TEXT_EXTENSIONS = {
    ".txt", ".md", ".rs", ".js", ".ts", ".py", ".go", ".java", ".cpp", ".c", ".h",
    ".css", ".html", ".xml", ".json", ".yaml", ".yml", ".toml", ".ini", ".cfg",
}

TYPE_EXTENSIONS: dict[str, list[str]] = {
    "py": [".py"],
    "js": [".js", ".jsx"],
    "ts": [".ts", ".tsx"],
    "rust": [".rs"],
    "go": [".go"],
    "java": [".java"],
    "c": [".c", ".h"],
    "cpp": [".cpp", ".hpp", ".cc", ".hh"],
    "md": [".md"],
    "json": [".json"],
    "yaml": [".yaml", ".yml"],
    "toml": [".toml"],
}

_SIZE_RE = re.compile(r"^([+-]?)(\d+(?:\.\d+)?)([KMG]?)B?$", re.IGNORECASE)
_AGE_RE = re.compile(r"^([+-]?)(\d+(?:\.\d+)?)([smhdw])$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}
_AGE_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def format_size(size: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def find_forbidden(command: str) -> str | None:
    """Return the forbidden command contained in command, if any."""
    normalized = " ".join(command.split())
    for forbidden in FORBIDDEN_COMMANDS:
        if re.search(rf"(?<![\w-]){re.escape(forbidden)}(?!\w)", normalized, re.IGNORECASE):
            return forbidden
    return None


def is_binary(path: Path) -> bool:
    with open(path, "rb") as f:
        return b"\x00" in f.read(BINARY_SNIFF_BYTES)


def grep_output_kind(arguments: dict[str, Any]) -> OutputKind:
    if arguments.get("output_mode", "files_with_matches") == "content":
        return OutputKind.SEARCH
    return OutputKind.LISTING


class FileToolset:
    """
    Tool handlers bound to one workspace root.

    register_default_tools() adds every tool to a registry with its schema,
    access class, output kind and resource-key extractor.
    """

    def __init__(
        self,
        root: Path,
        todo_list: TodoList,
        limits: ShapingLimits | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.todo_list = todo_list
        self.limits = limits or ShapingLimits()

    # Paths

    def resolve(self, path: str) -> Path:
        try:
            p = Path(path).expanduser()
            if not p.is_absolute():
                p = self.root / p
            return p.resolve()
        except (ValueError, RuntimeError, OSError) as e:
            raise InvalidArguments(f"Invalid path: {e}", step="resolve") from e

    def display(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.root))
        except ValueError:
            return str(path)

    def file_key(self, arguments: dict[str, Any], name: str = "file_path") -> str:
        return f"file:{self.resolve(arguments.get(name) or '.')}"

    def _require_path(self, path: str, tool_name: str) -> Path:
        resolved = self.resolve(path)
        if not resolved.exists():
            raise IOFailure(
                f"Path not found: {path}",
                tool_name=tool_name,
                resource_key=f"file:{resolved}",
                step="resolve",
            )
        return resolved

    def _walk_files(self, base: Path, max_depth: int | None = None) -> list[Path]:
        """Files under base, sorted, skipping .git directories."""
        if base.is_file():
            return [base]
        files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(base):
            depth = len(Path(dirpath).relative_to(base).parts)
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            if max_depth is not None and depth >= max_depth:
                dirnames[:] = []
            files.extend(Path(dirpath) / name for name in sorted(filenames))
        return files

    # Listing tools

    def ls(self, path: str = ".", ignore: list[str] | None = None) -> str:
        """List a directory: subdirectories first, then files newest first."""
        directory = self._require_path(path, "ls")
        if not directory.is_dir():
            raise InvalidArguments(f"Not a directory: {path}", tool_name="ls", step="resolve")
        ignore = ignore or []

        dirs: list[str] = []
        files: list[tuple[str, int, float]] = []
        for entry in os.scandir(directory):
            if any(pattern in entry.name for pattern in ignore):
                continue
            if entry.is_dir():
                dirs.append(entry.name)
            else:
                stat = entry.stat()
                files.append((entry.name, stat.st_size, stat.st_mtime))
        dirs.sort()
        files.sort(key=lambda f: (-f[2], f[0]))

        lines = [f"Directory: {path} ({directory})"]
        if dirs:
            lines.append("")
            lines.append(f"Subdirectories ({len(dirs)}):")
            if len(dirs) > MAX_LISTED_DIRS:
                lines.append(f"(Showing first {MAX_LISTED_DIRS} of {len(dirs)} directories)")
            lines.extend(f"  {name}/" for name in dirs[:MAX_LISTED_DIRS])
        if files:
            total = sum(size for _, size, _ in files)
            lines.append("")
            lines.append(f"Files ({len(files)}) - Total size: {format_size(total)}:")
            lines.extend(f"  {name} ({format_size(size)})" for name, size, _ in files)
        if not dirs and not files:
            lines.append("(Empty directory)")
        return "\n".join(lines)

    def glob(self, pattern: str, path: str = ".") -> str:
        """Find files matching one or more ;-separated glob patterns."""
        search_path = self._require_path(path, "glob")
        matches: set[str] = set()

        for p in pattern.split(";"):
            p = p.strip()
            if not p:
                continue
            # Bare patterns match at any depth
            if "**" not in p:
                p = f"**/{p}"
            for match in search_path.glob(p):
                if match.is_file() and not SKIP_DIRS.intersection(match.relative_to(search_path).parts):
                    matches.add(self.display(match))

        return "\n".join(sorted(matches)) if matches else "No matches found"

    def find(
        self,
        path: str = ".",
        name: str | None = None,
        pattern: str | None = None,
        file_type: str = "any",
        size: str | None = None,
        modified: str | None = None,
        max_depth: int | None = None,
        case_sensitive: bool = False,
        limit: int = FIND_DEFAULT_LIMIT,
    ) -> str:
        """
        Walk the tree and filter entries.

        size: "+1M" larger than, "-10K" smaller than, "100K" at least.
        modified: "-24h" within the last 24 hours, "+7d" older than 7 days.
        """
        base = self._require_path(path, "find")
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            regex = re.compile(pattern, flags) if pattern else None
        except re.error as e:
            raise InvalidArguments(f"Invalid regex pattern: {e}", tool_name="find", step="pattern") from e
        size_filter = self._parse_size(size) if size else None
        age_filter = self._parse_age(modified) if modified else None
        now = time.time()

        results: list[str] = []
        checked = 0
        for dirpath, dirnames, filenames in os.walk(base):
            current = Path(dirpath)
            depth = len(current.relative_to(base).parts)
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            if max_depth is not None and depth >= max_depth:
                dirnames[:] = []
            entries = [(current / d, True) for d in dirnames] + [
                (current / f, False) for f in sorted(filenames)
            ]
            for entry, is_dir in entries:
                checked += 1
                if file_type == "file" and is_dir or file_type == "dir" and not is_dir:
                    continue
                if name:
                    entry_name = entry.name if case_sensitive else entry.name.lower()
                    glob_name = name if case_sensitive else name.lower()
                    if not fnmatch.fnmatchcase(entry_name, glob_name):
                        continue
                if regex and not regex.search(entry.name):
                    continue
                try:
                    stat = entry.stat()
                except OSError:
                    continue
                if size_filter and (is_dir or not size_filter(stat.st_size)):
                    continue
                if age_filter and not age_filter(now - stat.st_mtime):
                    continue
                label = f"{'-':>10}" if is_dir else f"{format_size(stat.st_size):>10}"
                results.append(f"{label}  {self.display(entry)}{'/' if is_dir else ''}")
                if len(results) >= limit:
                    break
            if len(results) >= limit:
                break

        header = f"Found {len(results)} matches (checked {checked} items, limit: {limit})"
        if not results:
            return f"{header}\n\nNo files found matching the specified criteria."
        body = "\n".join(results)
        if len(results) >= limit:
            body += f"\n\n... Results limited to {limit} items"
        return f"{header}\n\n{body}"

    def _parse_size(self, spec: str):
        match = _SIZE_RE.match(spec.strip())
        if not match:
            raise InvalidArguments(f"Invalid size filter: {spec}", tool_name="find", step="size")
        sign, number, unit = match.groups()
        threshold = float(number) * _SIZE_UNITS[unit.upper()]
        if sign == "+":
            return lambda n: n > threshold
        if sign == "-":
            return lambda n: n < threshold
        return lambda n: n >= threshold

    def _parse_age(self, spec: str):
        match = _AGE_RE.match(spec.strip())
        if not match:
            raise InvalidArguments(f"Invalid modified filter: {spec}", tool_name="find", step="modified")
        sign, number, unit = match.groups()
        seconds = float(number) * _AGE_UNITS[unit.lower()]
        if sign == "+":
            return lambda age: age > seconds
        return lambda age: age <= seconds

    # Search

    def grep(
        self,
        pattern: str,
        path: str = ".",
        output_mode: str = "files_with_matches",
        glob: str | None = None,
        type: str | None = None,
        multiline: bool = False,
        head_limit: int | None = None,
        **kwargs: Any,
    ) -> str:
        """Search for a regex in files.

        Args:
            pattern: The regex pattern to search for
            path: File or directory to search in
            output_mode: 'files_with_matches', 'content', or 'count'
            glob: Glob pattern to filter files, ;-separated
            type: File type to search (py, js, ts, etc.)
            multiline: Enable multiline mode where . matches newlines
            head_limit: Limit output to first N lines/entries
        """
        search_path = self._require_path(path, "grep")

        case_insensitive = kwargs.get("-i", False)
        show_line_numbers = kwargs.get("-n", False)
        context_after = kwargs.get("-A", 0)
        context_before = kwargs.get("-B", 0)
        context_both = kwargs.get("-C", 0)
        if context_both:
            context_after = context_both
            context_before = context_both

        flags = re.IGNORECASE if case_insensitive else 0
        if multiline:
            flags |= re.MULTILINE | re.DOTALL
        try:
            regex = re.compile(pattern, flags)
        except re.error as e:
            raise InvalidArguments(f"Invalid regex pattern: {e}", tool_name="grep", step="pattern") from e

        def should_include_file(file_path: Path) -> bool:
            if glob:
                return any(fnmatch.fnmatch(file_path.name, p.strip()) for p in glob.split(";"))
            if type and type in TYPE_EXTENSIONS:
                return file_path.suffix in TYPE_EXTENSIONS[type]
            return True

        results: list[str] = []
        match_counts: dict[str, int] = {}

        for file_path in self._walk_files(search_path):
            if file_path != search_path and not should_include_file(file_path):
                continue
            try:
                file_content = file_path.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError):
                continue
            shown = self.display(file_path)

            if multiline:
                for match in regex.finditer(file_content):
                    match_counts[shown] = match_counts.get(shown, 0) + 1
                    if output_mode == "content":
                        line_num = file_content.count("\n", 0, match.start()) + 1
                        prefix = f"{shown}:{line_num}:" if show_line_numbers else f"{shown}:"
                        results.append(f"{prefix}{match.group()}")
                continue

            lines = file_content.splitlines()
            emitted_until = -1
            for i, line in enumerate(lines):
                if not regex.search(line):
                    continue
                match_counts[shown] = match_counts.get(shown, 0) + 1
                if output_mode != "content":
                    continue
                start = max(emitted_until + 1, i - context_before)
                end = min(len(lines), i + context_after + 1)
                for j in range(start, end):
                    prefix = f"{shown}:{j + 1}:" if show_line_numbers else f"{shown}:"
                    results.append(f"{prefix}{lines[j]}")
                emitted_until = end - 1

        if output_mode == "files_with_matches":
            output_list = sorted(match_counts)
        elif output_mode == "count":
            output_list = [f"{f}:{c}" for f, c in sorted(match_counts.items())]
        else:
            output_list = results
        if head_limit:
            output_list = output_list[:head_limit]
        return "\n".join(output_list) if output_list else "No matches found"

    # Files

    def read(self, file_path: str, offset: int = 0, limit: int | None = None) -> str:
        """
        Read a file as numbered lines.

        Without offset/limit the whole file is returned and the shaper
        samples it if it is long. A range is clamped to stay below the
        sampling threshold.
        """
        path = self._require_path(file_path, "read")
        if path.is_dir():
            raise InvalidArguments(
                f"{file_path} is a directory; use ls instead", tool_name="read", step="resolve"
            )
        if is_binary(path):
            return f"Binary file: {self.display(path)} ({format_size(path.stat().st_size)}), not shown"

        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        total = len(lines)
        if total == 0:
            return f"File is empty: {self.display(path)}"

        if not offset and limit is None:
            return "\n".join(f"{n:>6}→{line}" for n, line in enumerate(lines, start=1))

        if offset >= total:
            return f"Offset {offset} exceeds file length ({total} lines)"
        max_range = max(1, self.limits.read_truncate_threshold - 10)
        effective_limit = min(limit or max_range, max_range)
        end = min(offset + effective_limit, total)

        out = [f"=== LINES {offset + 1}-{end} of {total} ==="]
        out.extend(f"{n:>6}→{line}" for n, line in enumerate(lines[offset:end], start=offset + 1))
        if end < total:
            out.append(f"... {total - end} more lines follow ...")
        return "\n".join(out)

    def write(self, file_path: str, content: str, overwrite: bool = False) -> str:
        path = self.resolve(file_path)
        key = f"file:{path}"
        if path.is_dir():
            raise InvalidArguments(f"{file_path} is a directory", tool_name="write", resource_key=key, step="resolve")
        existed = path.exists()
        if existed and not overwrite:
            raise InvalidArguments(
                f"File already exists: {file_path}. Set overwrite=true to replace it, "
                "or use edit to change it.",
                tool_name="write",
                resource_key=key,
                step="exists",
            )
        if not path.parent.is_dir():
            raise IOFailure(
                f"Parent directory does not exist: {path.parent}",
                tool_name="write",
                resource_key=key,
                step="resolve",
            )

        content = content.replace("\r\n", "\n")
        if content and path.suffix in TEXT_EXTENSIONS and not content.endswith("\n"):
            content += "\n"
        write_atomic(path, content)

        lines = content.splitlines()
        result = [
            f"Successfully {'overwrote' if existed else 'wrote'} file: {self.display(path)}",
            f"Stats: {len(lines)} lines, {len(content.split())} words, {len(content.encode('utf-8'))} bytes",
            "",
            "Content preview:",
        ]
        result.extend(f"{i:3}│ {line}" for i, line in enumerate(lines[:WRITE_PREVIEW_LINES], start=1))
        if len(lines) > WRITE_PREVIEW_LINES:
            result.append(f"    ... {len(lines) - WRITE_PREVIEW_LINES} more lines")
        logger.info(f"File written: {path}")
        return "\n".join(result)

    def edit(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> str:
        """Replace one unique occurrence of old_string, or all with replace_all."""
        op = EditOperation(
            match_text=old_string,
            replacement_text=new_string,
            match_occurrence=MatchOccurrence.ALL if replace_all else MatchOccurrence.NTH_WITH_CONTEXT,
        )
        report = EditTransaction(self.resolve(file_path), [op], tool_name="edit").execute()
        return report.render()

    def multi_edit(self, file_path: str, edits: list[dict[str, Any]]) -> str:
        """Apply several edits to one file as a single transaction."""
        operations = []
        for e in edits:
            if e.get("replace_all"):
                occurrence = MatchOccurrence.ALL
            else:
                occurrence = MatchOccurrence(e.get("match_occurrence", MatchOccurrence.NTH_WITH_CONTEXT.value))
            operations.append(EditOperation(
                match_text=e["old_string"],
                replacement_text=e["new_string"],
                match_occurrence=occurrence,
                context_before=e.get("context_before", ""),
                context_after=e.get("context_after", ""),
                nth=e.get("nth"),
            ))
        report = EditTransaction(self.resolve(file_path), operations, tool_name="multi_edit").execute()
        return report.render()

    # Shell

    def bash(self, command: str, timeout: int | None = None, description: str | None = None) -> str:
        """Run a command with sh -c in the workspace root."""
        forbidden = find_forbidden(command)
        if forbidden:
            raise InvalidArguments(
                f"Command contains forbidden operation '{forbidden}': {command}",
                tool_name="bash",
                resource_key="shell",
                step="forbidden_command",
            )
        timeout_ms = min(timeout or BASH_DEFAULT_TIMEOUT_MS, BASH_MAX_TIMEOUT_MS)

        started = time.monotonic()
        try:
            result = subprocess.run(
                ["sh", "-c", command],
                cwd=self.root,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout_ms / 1000,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolTimeout(
                f"Command timed out after {timeout_ms / 1000:g} seconds: {command}",
                tool_name="bash",
                resource_key="shell",
                step="run",
            ) from e
        elapsed = time.monotonic() - started

        stdout = strip_ansi(result.stdout)
        stderr = strip_ansi(result.stderr)
        success = result.returncode == 0

        out = [f"Command: {command}"]
        if description:
            out.append(f"Description: {description}")
        out.append(f"Working Directory: {self.root}")
        out.append(f"Execution Time: {elapsed:.2f}s")
        out.append(f"Exit Code: {result.returncode}")
        out.append("")
        if stdout:
            out += ["Standard Output:", stdout.rstrip("\n"), ""]
        if stderr:
            out += ["Standard Error:", stderr.rstrip("\n"), ""]
        if not stdout and not stderr:
            out += ["No output produced", ""]
        out.append(f"Summary: Command {'succeeded' if success else 'failed'} in {elapsed:.2f}s")
        if not success:
            logger.warning(f"Command failed: {command} (exit code: {result.returncode})")
        return "\n".join(out)

    # Todos

    def todo_write(
        self,
        action: str,
        content: str | None = None,
        priority: str = "medium",
        id: str | None = None,
        status: str | None = None,
        ids: list[str] | None = None,
    ) -> str:
        if action == "create":
            if not content:
                raise InvalidArguments("create requires content", tool_name="todo_write", step="create")
            self.todo_list.create(content, TodoPriority(priority))
        elif action == "update_status":
            if not id or not status:
                raise InvalidArguments(
                    "update_status requires id and status", tool_name="todo_write", step="update_status"
                )
            self.todo_list.update_status(id, TodoStatus(status))
        elif action == "reorder":
            if ids is None:
                raise InvalidArguments("reorder requires ids", tool_name="todo_write", step="reorder")
            self.todo_list.reorder(ids)
        return self.todo_list.summary()

    # Registration

    def register_default_tools(self, registry: ToolRegistry) -> None:
        """Register every file tool with the registry."""
        path_key = lambda args: self.file_key(args, "path")  # noqa: E731
        file_key = lambda args: self.file_key(args, "file_path")  # noqa: E731

        registry.register_function(
            name="ls",
            description=(
                "List a directory: subdirectories first, then files with sizes, newest first."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Directory to list (default: workspace root)"},
                    "ignore": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Skip entries whose name contains any of these substrings",
                    },
                },
                "additionalProperties": False,
            },
            handler=self.ls,
            output_kind=OutputKind.LISTING,
            resource_key=path_key,
        )

        registry.register_function(
            name="glob",
            description="Find files matching glob patterns. Separate several patterns with ';'.",
            input_schema={
                "type": "object",
                "properties": {
                    "pattern": {"type": "string", "description": "Glob pattern(s), e.g. '*.py;*.md'"},
                    "path": {"type": "string", "description": "Directory to search in"},
                },
                "required": ["pattern"],
                "additionalProperties": False,
            },
            handler=self.glob,
            output_kind=OutputKind.LISTING,
            resource_key=path_key,
        )

        registry.register_function(
            name="find",
            description=(
                "Find files and directories by name, regex, type, size ('+1M', '-10K') "
                "or modification age ('-24h', '+7d')."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string"},
                    "name": {"type": "string", "description": "Glob on the entry name"},
                    "pattern": {"type": "string", "description": "Regex on the entry name"},
                    "file_type": {"type": "string", "enum": ["file", "dir", "any"]},
                    "size": {"type": "string"},
                    "modified": {"type": "string"},
                    "max_depth": {"type": "integer", "minimum": 0},
                    "case_sensitive": {"type": "boolean"},
                    "limit": {"type": "integer", "minimum": 1},
                },
                "additionalProperties": False,
            },
            handler=self.find,
            output_kind=OutputKind.LISTING,
            resource_key=path_key,
        )

        registry.register_function(
            name="grep",
            description=(
                "Search file contents with a regex. output_mode: files_with_matches (default), "
                "content or count. Narrow with glob, type or head_limit."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "pattern": {"type": "string", "description": "Regex to search for"},
                    "path": {"type": "string", "description": "File or directory to search in"},
                    "output_mode": {
                        "type": "string",
                        "enum": ["content", "files_with_matches", "count"],
                    },
                    "glob": {"type": "string"},
                    "type": {"type": "string"},
                    "-i": {"type": "boolean", "description": "Case insensitive"},
                    "-n": {"type": "boolean", "description": "Show line numbers (content mode)"},
                    "-A": {"type": "integer", "minimum": 0},
                    "-B": {"type": "integer", "minimum": 0},
                    "-C": {"type": "integer", "minimum": 0},
                    "multiline": {"type": "boolean"},
                    "head_limit": {"type": "integer", "minimum": 1},
                },
                "required": ["pattern"],
                "additionalProperties": False,
            },
            handler=self.grep,
            output_kind=grep_output_kind,
            resource_key=path_key,
        )

        registry.register_function(
            name="read",
            description=(
                "Read a file as numbered lines. Long files are sampled; "
                "use offset (lines to skip) and limit to read a specific range."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "file_path": {"type": "string"},
                    "offset": {"type": "integer", "minimum": 0},
                    "limit": {"type": "integer", "minimum": 1},
                },
                "required": ["file_path"],
                "additionalProperties": False,
            },
            handler=self.read,
            output_kind=OutputKind.FILE_READ,
            resource_key=file_key,
        )

        registry.register_function(
            name="write",
            description=(
                "Create a file. The parent directory must exist. "
                "Set overwrite=true to replace an existing file."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "file_path": {"type": "string"},
                    "content": {"type": "string"},
                    "overwrite": {"type": "boolean"},
                },
                "required": ["file_path", "content"],
                "additionalProperties": False,
            },
            handler=self.write,
            access=ToolAccess.WRITE,
            resource_key=file_key,
        )

        registry.register_function(
            name="edit",
            description=(
                "Replace old_string with new_string in a file. old_string must be unique "
                "unless replace_all is true."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "file_path": {"type": "string"},
                    "old_string": {"type": "string", "minLength": 1},
                    "new_string": {"type": "string"},
                    "replace_all": {"type": "boolean"},
                },
                "required": ["file_path", "old_string", "new_string"],
                "additionalProperties": False,
            },
            handler=self.edit,
            access=ToolAccess.WRITE,
            resource_key=file_key,
        )

        registry.register_function(
            name="multi_edit",
            description=(
                "Apply several edits to one file atomically. Edits apply in order, each to the "
                "result of the previous one. All succeed or the file is left untouched."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "file_path": {"type": "string"},
                    "edits": {
                        "type": "array",
                        "minItems": 1,
                        "maxItems": 50,
                        "items": {
                            "type": "object",
                            "properties": {
                                "old_string": {"type": "string", "minLength": 1},
                                "new_string": {"type": "string"},
                                "replace_all": {"type": "boolean"},
                                "match_occurrence": {
                                    "type": "string",
                                    "enum": [m.value for m in MatchOccurrence],
                                },
                                "context_before": {"type": "string"},
                                "context_after": {"type": "string"},
                                "nth": {"type": "integer", "minimum": 1},
                            },
                            "required": ["old_string", "new_string"],
                            "additionalProperties": False,
                        },
                    },
                },
                "required": ["file_path", "edits"],
                "additionalProperties": False,
            },
            handler=self.multi_edit,
            access=ToolAccess.WRITE,
            resource_key=file_key,
        )

        registry.register_function(
            name="bash",
            description=(
                "Run a shell command in the workspace root. timeout is in milliseconds "
                f"(default {BASH_DEFAULT_TIMEOUT_MS}, max {BASH_MAX_TIMEOUT_MS})."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "command": {"type": "string", "minLength": 1},
                    "timeout": {"type": "integer", "minimum": 1, "maximum": BASH_MAX_TIMEOUT_MS},
                    "description": {"type": "string"},
                },
                "required": ["command"],
                "additionalProperties": False,
            },
            handler=self.bash,
            access=ToolAccess.WRITE,
            resource_key=lambda args: "shell",
        )

        registry.register_function(
            name="todo_write",
            description=(
                "Manage the task list: create, update_status, reorder or list. "
                "Only one todo may be in_progress at a time."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "action": {"type": "string", "enum": ["create", "update_status", "reorder", "list"]},
                    "content": {"type": "string"},
                    "priority": {"type": "string", "enum": [p.value for p in TodoPriority]},
                    "id": {"type": "string"},
                    "status": {"type": "string", "enum": [s.value for s in TodoStatus]},
                    "ids": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["action"],
                "additionalProperties": False,
            },
            handler=self.todo_write,
            access=ToolAccess.WRITE,
            resource_key=lambda args: "todo",
        )
