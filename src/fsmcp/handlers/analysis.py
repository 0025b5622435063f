"""Code-analysis tools: project scan, pattern search, metrics and refactor hints.

The metric helpers are pure functions over source text so they can be
tested without touching the filesystem; the tool methods add path handling
and run in a worker thread.
"""

from __future__ import annotations

import ast
import asyncio
import fnmatch
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from fsmcp.handlers._paths import is_probably_binary, walk_files
from fsmcp.protocol.errors import ToolError
from fsmcp.server.specs import ToolSpec

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from fsmcp.config import SearchSettings
    from fsmcp.handlers._paths import PathResolver
    from fsmcp.server.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

MAX_ANALYZED_BYTES = 2 * 1024 * 1024
MAX_NESTING = 4
LARGE_FILE_LINES = 500
MAX_REPORTED_PER_KIND = 5
MAX_SUGGESTIONS = 200


@dataclass(frozen=True)
class Language:
    name: str
    line_comments: tuple[str, ...] = ()
    block_comment: tuple[str, str] | None = None
    source: bool = True


_C_STYLE = {"line_comments": ("//",), "block_comment": ("/*", "*/")}

LANGUAGES: dict[str, Language] = {
    ".py": Language("Python", ("#",)),
    ".pyi": Language("Python", ("#",)),
    ".js": Language("JavaScript", **_C_STYLE),
    ".mjs": Language("JavaScript", **_C_STYLE),
    ".cjs": Language("JavaScript", **_C_STYLE),
    ".jsx": Language("JavaScript", **_C_STYLE),
    ".ts": Language("TypeScript", **_C_STYLE),
    ".tsx": Language("TypeScript", **_C_STYLE),
    ".go": Language("Go", **_C_STYLE),
    ".rs": Language("Rust", **_C_STYLE),
    ".java": Language("Java", **_C_STYLE),
    ".kt": Language("Kotlin", **_C_STYLE),
    ".swift": Language("Swift", **_C_STYLE),
    ".c": Language("C", **_C_STYLE),
    ".h": Language("C", **_C_STYLE),
    ".cc": Language("C++", **_C_STYLE),
    ".cpp": Language("C++", **_C_STYLE),
    ".hpp": Language("C++", **_C_STYLE),
    ".cs": Language("C#", **_C_STYLE),
    ".php": Language("PHP", ("//", "#"), ("/*", "*/")),
    ".rb": Language("Ruby", ("#",)),
    ".sh": Language("Shell", ("#",)),
    ".sql": Language("SQL", ("--",), ("/*", "*/")),
    ".html": Language("HTML", (), ("<!--", "-->"), source=False),
    ".css": Language("CSS", (), ("/*", "*/"), source=False),
    ".md": Language("Markdown", source=False),
    ".json": Language("JSON", source=False),
    ".yaml": Language("YAML", ("#",), source=False),
    ".yml": Language("YAML", ("#",), source=False),
    ".toml": Language("TOML", ("#",), source=False),
}

_FUNCTION_RE = re.compile(
    r"^\s*(?:export\s+)?(?:async\s+)?function\b|\bfunc\s+\w+|\bfn\s+\w+|^\s*def\s+\w+",
    re.MULTILINE,
)
_CLASS_RE = re.compile(r"^\s*(?:export\s+)?(?:abstract\s+)?(?:class|struct)\s+\w+", re.MULTILINE)
_MARKER_RE = re.compile(r"\b(TODO|FIXME|HACK|XXX)\b[:\s]*(.*)")


def language_for(path: Path) -> Language | None:
    return LANGUAGES.get(path.suffix.lower())


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


@dataclass
class FileMetrics:
    """Line and structure counts for one source file."""

    path: str
    language: str
    total: int = 0
    code: int = 0
    comment: int = 0
    blank: int = 0
    functions: int = 0
    classes: int = 0
    longest_line: int = 0
    max_indent: int = 0

    def merge(self, other: FileMetrics) -> None:
        self.total += other.total
        self.code += other.code
        self.comment += other.comment
        self.blank += other.blank
        self.functions += other.functions
        self.classes += other.classes
        self.longest_line = max(self.longest_line, other.longest_line)
        self.max_indent = max(self.max_indent, other.max_indent)


def indent_level(line: str) -> int:
    """Nesting level of *line*, counting four columns (or one tab) per level."""
    expanded = line.expandtabs(4)
    return (len(expanded) - len(expanded.lstrip(" "))) // 4


def compute_metrics(path: str, text: str, language: Language) -> FileMetrics:
    metrics = FileMetrics(path=path, language=language.name)
    in_block = False

    for line in text.splitlines():
        metrics.total += 1
        metrics.longest_line = max(metrics.longest_line, len(line))
        stripped = line.strip()

        if not stripped:
            metrics.blank += 1
            continue
        if in_block:
            metrics.comment += 1
            assert language.block_comment is not None
            if language.block_comment[1] in stripped:
                in_block = False
            continue
        if language.block_comment and stripped.startswith(language.block_comment[0]):
            metrics.comment += 1
            opener, closer = language.block_comment
            if closer not in stripped[len(opener) :]:
                in_block = True
            continue
        if language.line_comments and stripped.startswith(language.line_comments):
            metrics.comment += 1
            continue

        metrics.code += 1
        metrics.max_indent = max(metrics.max_indent, indent_level(line))

    metrics.functions, metrics.classes = count_definitions(text, language)
    return metrics


def count_definitions(text: str, language: Language) -> tuple[int, int]:
    """Return ``(functions, classes)``: exact for Python, heuristic otherwise."""
    if language.name == "Python":
        try:
            tree = ast.parse(text)
        except SyntaxError:
            pass
        else:
            functions = classes = 0
            for node in ast.walk(tree):
                if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    functions += 1
                elif isinstance(node, ast.ClassDef):
                    classes += 1
            return functions, classes
    return len(_FUNCTION_RE.findall(text)), len(_CLASS_RE.findall(text))


# ---------------------------------------------------------------------------
# Refactor heuristics
# ---------------------------------------------------------------------------


@dataclass
class _FunctionSpan:
    name: str
    line: int
    length: int


class _FunctionCollector(ast.NodeVisitor):
    """Collects qualified function names with their line spans."""

    def __init__(self) -> None:
        self.spans: list[_FunctionSpan] = []
        self._scope: list[str] = []

    def visit_ClassDef(self, node: ast.ClassDef) -> None:  # noqa: N802
        self._scope.append(node.name)
        self.generic_visit(node)
        self._scope.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:  # noqa: N802
        self._record(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:  # noqa: N802
        self._record(node)

    def _record(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        name = ".".join([*self._scope, node.name])
        end = node.end_lineno or node.lineno
        self.spans.append(_FunctionSpan(name=name, line=node.lineno, length=end - node.lineno + 1))
        self._scope.append(node.name)
        self.generic_visit(node)
        self._scope.pop()


@dataclass
class RefactorReport:
    path: str
    suggestions: list[str] = field(default_factory=lambda: list[str]())

    def add(self, line: int | None, message: str) -> None:
        where = f"{self.path}:{line}" if line is not None else self.path
        self.suggestions.append(f"{where}: {message}")


def suggest_for_text(
    path: str,
    text: str,
    language: Language,
    *,
    max_function_lines: int = 50,
    max_line_length: int = 120,
) -> RefactorReport:
    report = RefactorReport(path=path)
    lines = text.splitlines()

    if language.name == "Python":
        try:
            tree = ast.parse(text)
        except SyntaxError as exc:
            report.add(exc.lineno, f"could not parse ({exc.msg}); skipped function checks")
        else:
            collector = _FunctionCollector()
            collector.visit(tree)
            for span in collector.spans:
                if span.length > max_function_lines:
                    report.add(
                        span.line,
                        f"function '{span.name}' is {span.length} lines long "
                        f"(limit {max_function_lines}); consider splitting it",
                    )

    _report_limited(
        report,
        (
            (number, f"line is {len(line)} characters (limit {max_line_length})")
            for number, line in enumerate(lines, start=1)
            if len(line) > max_line_length
        ),
        "long lines",
    )
    _report_limited(
        report,
        (
            (number, f"nesting depth {indent_level(line)}; consider early returns or a helper")
            for number, line in enumerate(lines, start=1)
            if line.strip() and indent_level(line) > MAX_NESTING
        ),
        "deeply nested lines",
    )
    for number, line in enumerate(lines, start=1):
        found = _MARKER_RE.search(line)
        if found:
            detail = found.group(2).strip()
            report.add(number, f"{found.group(1)} marker" + (f": {detail}" if detail else ""))

    if len(lines) > LARGE_FILE_LINES:
        report.add(None, f"{len(lines)} lines; consider splitting the module")
    return report


def _report_limited(report: RefactorReport, items: Iterator[tuple[int, str]], label: str) -> None:
    extra = 0
    reported = 0
    for number, message in items:
        if reported < MAX_REPORTED_PER_KIND:
            report.add(number, message)
            reported += 1
        else:
            extra += 1
    if extra:
        report.add(None, f"... and {extra} more {label}")


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class CodeAnalysisTools:
    """Handlers for the code-analysis tool family."""

    def __init__(self, resolver: PathResolver, search: SearchSettings) -> None:
        self._resolver = resolver
        self._search = search

    async def scan_project(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(
            self._scan_project, arguments.get("path", "."), arguments.get("maxDepth")
        )

    async def find_pattern(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(
            self._find_pattern,
            arguments["directory"],
            arguments["pattern"],
            arguments.get("fileGlob"),
            arguments.get("caseSensitive", False),
            arguments.get("maxResults", self._search.max_results),
        )

    async def code_metrics(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(self._code_metrics, arguments["path"])

    async def suggest_refactors(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(
            self._suggest_refactors,
            arguments["path"],
            arguments.get("maxFunctionLines", 50),
            arguments.get("maxLineLength", 120),
        )

    # -- implementations ----------------------------------------------------

    def _scan_project(self, raw_path: str, max_depth: int | None) -> str:
        root = self._require_dir(raw_path, "Scan failed")

        files: Counter[str] = Counter()
        lines: Counter[str] = Counter()
        sizes: list[tuple[int, Path]] = []
        for path in walk_files(root, self._search.ignored_dirs, max_depth=max_depth):
            try:
                size = path.stat().st_size
            except OSError:
                continue
            sizes.append((size, path))
            language = language_for(path)
            name = language.name if language else "Other"
            files[name] += 1
            if language is not None and size <= MAX_ANALYZED_BYTES:
                text = _read_text(path)
                if text is not None:
                    lines[name] += len(text.splitlines())

        total_files = sum(files.values())
        out = [
            f"Project: {root}",
            f"Files: {total_files}  Lines (recognised languages): {sum(lines.values())}",
            "",
            f"{'Language':<16}{'Files':>8}{'Lines':>10}",
        ]
        for name, count in files.most_common():
            out.append(f"{name:<16}{count:>8}{lines[name] if name in lines else '-':>10}")

        if sizes:
            out += ["", "Largest files:"]
            for size, path in sorted(sizes, key=lambda item: item[0], reverse=True)[:10]:
                out.append(f"  {size / 1024:>9.1f} KB  {path.relative_to(root)}")
        return "\n".join(out)

    def _find_pattern(
        self,
        raw_dir: str,
        pattern: str,
        file_glob: str | None,
        case_sensitive: bool,
        max_results: int,
    ) -> str:
        try:
            regex = re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
        except re.error as exc:
            raise ToolError(f"Invalid regular expression '{pattern}': {exc}") from exc

        target = self._resolver.resolve(raw_dir)
        if target.is_file():
            base, candidates = target.parent, iter([target])
        elif target.is_dir():
            base, candidates = target, walk_files(target, self._search.ignored_dirs)
        else:
            raise ToolError(f"Search failed: '{target}' does not exist.")

        matches: list[str] = []
        truncated = False
        for path in candidates:
            if file_glob and not fnmatch.fnmatch(path.name, file_glob):
                continue
            text = _read_text(path)
            if text is None:
                continue
            for number, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    matches.append(f"{path.relative_to(base)}:{number}: {line.strip()[:200]}")
                    if len(matches) >= max_results:
                        truncated = True
                        break
            if truncated:
                break

        if not matches:
            return f"No matches for /{pattern}/ in '{target}'."
        header = f"Found {len(matches)} match(es) for /{pattern}/ in '{target}'"
        header += " (limit reached):" if truncated else ":"
        return "\n".join([header, *matches])

    def _code_metrics(self, raw_path: str) -> str:
        target = self._resolver.resolve(raw_path)
        if target.is_file():
            language = language_for(target)
            if language is None:
                raise ToolError(f"Unsupported file type for metrics: '{target}'")
            text = _read_text(target)
            if text is None:
                raise ToolError(f"Could not read '{target}' as text")
            return _format_metrics(compute_metrics(target.name, text, language))

        if not target.is_dir():
            raise ToolError(f"Metrics failed: '{target}' does not exist.")

        per_file: list[FileMetrics] = []
        for path in walk_files(target, self._search.ignored_dirs):
            language = language_for(path)
            if language is None or not language.source:
                continue
            text = _read_text(path)
            if text is not None:
                per_file.append(compute_metrics(str(path.relative_to(target)), text, language))

        if not per_file:
            return f"No source files found in '{target}'."

        totals = FileMetrics(path=str(target), language="all")
        for metrics in per_file:
            totals.merge(metrics)
        out = [
            f"Source files: {len(per_file)}",
            _format_metrics(totals),
            "",
            f"{'File':<50}{'Lines':>8}{'Code':>8}{'Funcs':>7}",
        ]
        for metrics in sorted(per_file, key=lambda m: m.total, reverse=True)[:50]:
            out.append(
                f"{metrics.path:<50}{metrics.total:>8}{metrics.code:>8}{metrics.functions:>7}"
            )
        return "\n".join(out)

    def _suggest_refactors(
        self, raw_path: str, max_function_lines: int, max_line_length: int
    ) -> str:
        target = self._resolver.resolve(raw_path)
        if target.is_file():
            base, candidates = target.parent, [target]
        elif target.is_dir():
            base, candidates = target, list(walk_files(target, self._search.ignored_dirs))
        else:
            raise ToolError(f"Cannot analyse '{target}': path does not exist.")

        suggestions: list[str] = []
        for path in candidates:
            language = language_for(path)
            if language is None or not language.source:
                continue
            text = _read_text(path)
            if text is None:
                continue
            report = suggest_for_text(
                str(path.relative_to(base)),
                text,
                language,
                max_function_lines=max_function_lines,
                max_line_length=max_line_length,
            )
            suggestions.extend(report.suggestions)

        if not suggestions:
            return f"No refactoring suggestions for '{target}'."
        shown = suggestions[:MAX_SUGGESTIONS]
        out = [f"Refactoring suggestions for '{target}' ({len(suggestions)}):", *shown]
        if len(suggestions) > len(shown):
            out.append(f"... {len(suggestions) - len(shown)} more not shown")
        return "\n".join(out)

    def _require_dir(self, raw_path: str, action: str) -> Path:
        path = self._resolver.resolve(raw_path)
        if not path.is_dir():
            raise ToolError(f"{action}: '{path}' is not a directory.")
        return path


def _read_text(path: Path) -> str | None:
    """File contents as text, or ``None`` for binary, oversized or unreadable files."""
    try:
        if path.stat().st_size > MAX_ANALYZED_BYTES or is_probably_binary(path):
            return None
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Skipping %s: %s", path, exc)
        return None


def _format_metrics(metrics: FileMetrics) -> str:
    return "\n".join(
        [
            f"Path:            {metrics.path}",
            f"Language:        {metrics.language}",
            f"Total lines:     {metrics.total}",
            f"Code lines:      {metrics.code}",
            f"Comment lines:   {metrics.comment}",
            f"Blank lines:     {metrics.blank}",
            f"Functions:       {metrics.functions}",
            f"Classes:         {metrics.classes}",
            f"Longest line:    {metrics.longest_line}",
            f"Deepest indent:  {metrics.max_indent}",
        ]
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_analysis_tools(
    registry: CapabilityRegistry, resolver: PathResolver, search: SearchSettings
) -> CodeAnalysisTools:
    tools = CodeAnalysisTools(resolver, search)

    registry.register_tool(
        ToolSpec(
            name="scan_project",
            description=(
                "Summarise a project tree: file and line counts per language "
                "and the largest files."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Project directory. Default '.'."},
                    "maxDepth": {"type": "integer", "minimum": 1, "description": "Depth limit."},
                },
                "additionalProperties": False,
            },
            handler=tools.scan_project,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="find_pattern",
            description="Search file contents for a regular expression; prints file:line: text.",
            input_schema={
                "type": "object",
                "properties": {
                    "directory": {"type": "string", "description": "Directory or file."},
                    "pattern": {"type": "string", "description": "Regular expression."},
                    "fileGlob": {"type": "string", "description": "Filename glob, e.g. '*.py'."},
                    "caseSensitive": {"type": "boolean", "description": "Default false."},
                    "maxResults": {"type": "integer", "minimum": 1},
                },
                "required": ["directory", "pattern"],
                "additionalProperties": False,
            },
            handler=tools.find_pattern,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="code_metrics",
            description=(
                "Line metrics (total, code, comment, blank), function and class counts, "
                "longest line and deepest indentation for a file or a source tree."
            ),
            input_schema={
                "type": "object",
                "properties": {"path": {"type": "string", "description": "File or directory."}},
                "required": ["path"],
                "additionalProperties": False,
            },
            handler=tools.code_metrics,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="suggest_refactors",
            description=(
                "Heuristic refactoring hints: long functions, long lines, deep nesting, "
                "TODO/FIXME markers and oversized files."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File or directory."},
                    "maxFunctionLines": {"type": "integer", "minimum": 1},
                    "maxLineLength": {"type": "integer", "minimum": 20},
                },
                "required": ["path"],
                "additionalProperties": False,
            },
            handler=tools.suggest_refactors,
        )
    )
    return tools
