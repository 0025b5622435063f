"""Filesystem tools: read, write, list, search, stat and delete.

Every tool runs its blocking work in a worker thread and reports domain
failures (missing file, wrong kind of path, permission denied) as
:class:`ToolError`, which the dispatcher turns into an ``isError`` result.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
import stat
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fsmcp.handlers._paths import guess_mime, walk_files
from fsmcp.protocol.errors import ToolError
from fsmcp.server.specs import ToolSpec

if TYPE_CHECKING:
    from pathlib import Path

    from fsmcp.config import SearchSettings
    from fsmcp.handlers._paths import PathResolver
    from fsmcp.server.registry import CapabilityRegistry

logger = logging.getLogger(__name__)


class FilesystemTools:
    """Handlers for the filesystem tool family, bound to one path resolver."""

    def __init__(self, resolver: PathResolver, search: SearchSettings) -> None:
        self._resolver = resolver
        self._search = search

    # -- read_file ----------------------------------------------------------

    async def read_file(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(
            self._read_file, arguments["path"], arguments.get("encoding", "utf8")
        )

    def _read_file(self, raw_path: str, encoding: str) -> str:
        path = self._resolver.resolve(raw_path)
        try:
            info = path.stat()
            if stat.S_ISDIR(info.st_mode):
                raise ToolError(f"'{path}' is a directory. Use list_directory instead.")
            data = path.read_bytes()
        except OSError as exc:
            raise ToolError(f"Could not read file: {exc}") from exc

        if encoding == "base64":
            content = base64.b64encode(data).decode("ascii")
        else:
            try:
                content = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ToolError(
                    f"Could not read file: '{path}' is not valid UTF-8 ({exc.reason}). "
                    "Use encoding 'base64'."
                ) from exc

        return (
            f"File: {path}\nSize: {info.st_size / 1024:.2f} KB\nEncoding: {encoding}\n\n"
            f"--- Content ---\n{content}"
        )

    # -- write_file ---------------------------------------------------------

    async def write_file(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(
            self._write_file,
            arguments["path"],
            arguments["content"],
            arguments.get("append", False),
        )

    def _write_file(self, raw_path: str, content: str, append: bool) -> str:
        path = self._resolver.resolve(raw_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a" if append else "w", encoding="utf-8") as fh:
                fh.write(content)
        except OSError as exc:
            raise ToolError(f"Could not write file: {exc}") from exc

        logger.info("%s %d characters to %s", "Appended" if append else "Wrote", len(content), path)
        if append:
            return f"Appended {len(content)} characters to '{path}'."
        return f"Wrote {len(content)} characters to '{path}'."

    # -- list_directory -----------------------------------------------------

    async def list_directory(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(
            self._list_directory, arguments["path"], arguments.get("recursive", False)
        )

    def _list_directory(self, raw_path: str, recursive: bool) -> str:
        path = self._resolver.resolve(raw_path)
        try:
            if not path.is_dir():
                if not path.exists():
                    raise ToolError(f"Could not list directory: '{path}' does not exist.")
                raise ToolError(f"'{path}' is not a directory. Use read_file to read files.")
            entries: list[str] = []
            _collect_entries(path, path, recursive, entries)
        except OSError as exc:
            raise ToolError(f"Could not list directory: {exc}") from exc

        lines = [f"Directory: {path}\n", *entries, f"\nTotal entries: {len(entries)}"]
        return "\n".join(lines)

    # -- search_files -------------------------------------------------------

    async def search_files(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(
            self._search_files,
            arguments["directory"],
            arguments["pattern"],
            arguments.get("maxResults", self._search.max_results),
        )

    def _search_files(self, raw_dir: str, pattern: str, max_results: int) -> str:
        directory = self._resolver.resolve(raw_dir)
        if not directory.is_dir():
            raise ToolError(f"Search failed: '{directory}' is not a directory.")

        regex = wildcard_to_regex(pattern)
        results: list[Path] = []
        for candidate in walk_files(directory, self._search.ignored_dirs):
            if regex.search(candidate.name):
                results.append(candidate)
                if len(results) >= max_results:
                    break

        if not results:
            return f"No files matching '{pattern}' found in '{directory}'."
        header = f"Found {len(results)} match(es) for '{pattern}' in '{directory}':\n"
        return header + "\n".join(f"  {result}" for result in results)

    # -- get_file_info ------------------------------------------------------

    async def get_file_info(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(self._get_file_info, arguments["path"])

    def _get_file_info(self, raw_path: str) -> str:
        path = self._resolver.resolve(raw_path)
        try:
            info = path.lstat()
            if stat.S_ISLNK(info.st_mode):
                kind = "symlink"
            elif stat.S_ISDIR(info.st_mode):
                kind = "directory"
            else:
                kind = "file"
        except OSError as exc:
            raise ToolError(f"Could not stat path '{path}': {exc.strerror or exc}") from exc

        created = getattr(info, "st_birthtime", info.st_ctime)
        return "\n".join(
            [
                f"Path:           {path}",
                f"Type:           {kind}",
                f"MIME (guessed): {guess_mime(path)}",
                f"Size:           {info.st_size} bytes  ({info.st_size / 1024:.2f} KB)",
                f"Created:        {_iso(created)}",
                f"Modified:       {_iso(info.st_mtime)}",
                f"Accessed:       {_iso(info.st_atime)}",
                f"Permissions:    {stat.S_IMODE(info.st_mode) & 0o777:o} (octal)",
            ]
        )

    # -- delete_file --------------------------------------------------------

    async def delete_file(self, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(self._delete_file, arguments["path"])

    def _delete_file(self, raw_path: str) -> str:
        path = self._resolver.resolve(raw_path)
        try:
            if path.is_dir():
                raise ToolError(f"'{path}' is a directory. This tool only deletes files.")
            path.unlink()
        except OSError as exc:
            raise ToolError(f"Could not delete file: {exc}") from exc

        logger.info("Deleted %s", path)
        return f"Deleted file: '{path}'."


def wildcard_to_regex(pattern: str) -> re.Pattern[str]:
    """``*`` matches anything; everything else is a case-insensitive substring."""
    return re.compile(re.escape(pattern).replace(r"\*", ".*"), re.IGNORECASE)


def _collect_entries(base: Path, current: Path, recursive: bool, lines: list[str]) -> None:
    for entry in sorted(current.iterdir(), key=lambda p: p.name):
        relative = entry.relative_to(base)
        if entry.is_dir():
            lines.append(f"[DIR]  {relative}/")
            if recursive:
                _collect_entries(base, entry, recursive, lines)
        elif entry.is_file():
            info = entry.stat()
            modified = datetime.fromtimestamp(info.st_mtime, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")
            size_kb = f"{info.st_size / 1024:.1f}"
            lines.append(f"[FILE] {str(relative):<50} {size_kb:>8} KB  {modified}")


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_filesystem_tools(
    registry: CapabilityRegistry, resolver: PathResolver, search: SearchSettings
) -> FilesystemTools:
    """Register the six filesystem tools and return their handler object."""
    tools = FilesystemTools(resolver, search)
    path_property = {"type": "string", "description": "Absolute or relative path."}

    registry.register_tool(
        ToolSpec(
            name="read_file",
            description=(
                "Read the complete content of a file at the given path. "
                "Fails if the path does not exist or is a directory."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": path_property,
                    "encoding": {
                        "type": "string",
                        "enum": ["utf8", "base64"],
                        "description": "Encoding. Defaults to 'utf8'.",
                    },
                },
                "required": ["path"],
                "additionalProperties": False,
            },
            handler=tools.read_file,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="write_file",
            description=(
                "Write (or overwrite) a file with the provided text content. "
                "Creates parent directories if they do not exist."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": path_property,
                    "content": {"type": "string", "description": "Text content to write."},
                    "append": {
                        "type": "boolean",
                        "description": "Append instead of overwriting. Default false.",
                    },
                },
                "required": ["path", "content"],
                "additionalProperties": False,
            },
            handler=tools.write_file,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="list_directory",
            description=(
                "List the contents of a directory with type, size and last-modified date. "
                "Use recursive=true to include nested entries."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": path_property,
                    "recursive": {"type": "boolean", "description": "Recurse. Default false."},
                },
                "required": ["path"],
                "additionalProperties": False,
            },
            handler=tools.list_directory,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="search_files",
            description=(
                "Find files whose names match a pattern (case-insensitive substring, "
                "'*' as wildcard) under a directory."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "directory": {"type": "string", "description": "Directory to search."},
                    "pattern": {"type": "string", "description": "E.g. '*.py' or 'config'."},
                    "maxResults": {
                        "type": "integer",
                        "minimum": 1,
                        "description": f"Maximum results. Default {search.max_results}.",
                    },
                },
                "required": ["directory", "pattern"],
                "additionalProperties": False,
            },
            handler=tools.search_files,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="get_file_info",
            description=(
                "Get metadata about a file or directory: size, type, permissions, "
                "timestamps and a MIME type guess."
            ),
            input_schema={
                "type": "object",
                "properties": {"path": path_property},
                "required": ["path"],
                "additionalProperties": False,
            },
            handler=tools.get_file_info,
        )
    )
    registry.register_tool(
        ToolSpec(
            name="delete_file",
            description="Delete a file. Irreversible. Does not delete directories.",
            input_schema={
                "type": "object",
                "properties": {"path": path_property},
                "required": ["path"],
                "additionalProperties": False,
            },
            handler=tools.delete_file,
        )
    )
    return tools
