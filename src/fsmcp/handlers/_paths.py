"""Path resolution and directory walking shared by the reference handlers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from fsmcp.protocol.errors import ToolError
from fsmcp.server.context import current_request

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

MIME_TYPES: dict[str, str] = {
    ".ts": "text/typescript",
    ".tsx": "text/typescript",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".md": "text/markdown",
    ".txt": "text/plain",
    ".html": "text/html",
    ".css": "text/css",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".py": "text/x-python",
    ".rs": "text/x-rust",
    ".go": "text/x-go",
    ".sh": "text/x-shellscript",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/toml",
    ".csv": "text/csv",
}

TEXT_EXTENSIONS = frozenset(
    {
        ".ts", ".tsx", ".js", ".mjs", ".json", ".md", ".txt", ".html", ".css",
        ".yaml", ".yml", ".toml", ".csv", ".sh", ".py", ".rs", ".go", ".xml", ".env",
    }
)  # fmt: skip


def guess_mime(path: Path | str) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


class PathResolver:
    """Turns user-supplied paths into absolute paths under a root.

    Relative paths are joined onto ``root``.  With ``restrict_to_root`` set,
    anything resolving outside ``root`` (``..`` segments, absolute paths,
    symlinks) raises :class:`ToolError`.
    """

    def __init__(self, root: Path, *, restrict_to_root: bool = False) -> None:
        self.root = root.expanduser().resolve()
        self.restrict_to_root = restrict_to_root

    def resolve(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = self.root / path
        resolved = path.resolve()
        if self.restrict_to_root and not resolved.is_relative_to(self.root):
            raise ToolError(f"Path outside root '{self.root}': {raw}")
        return resolved

    def display(self, path: Path) -> str:
        """Path relative to the root when possible, else absolute."""
        if path.is_relative_to(self.root):
            return str(path.relative_to(self.root)) or "."
        return str(path)


def walk_files(
    top: Path,
    ignored_dirs: Iterable[str],
    *,
    max_depth: int | None = None,
) -> Iterator[Path]:
    """Yield files under *top* in sorted order, pruning ignored directories.

    Unreadable directories are skipped.  The walk stops with a
    :class:`ToolError` once the request it serves has been cancelled.
    """
    ignored = set(ignored_dirs)
    base_depth = len(top.parts)
    for dirpath, dirnames, filenames in os.walk(top):
        raise_if_cancelled()
        current = Path(dirpath)
        depth = len(current.parts) - base_depth
        if max_depth is not None and depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(d for d in dirnames if d not in ignored)
        for name in sorted(filenames):
            yield current / name


def raise_if_cancelled() -> None:
    """Abort worker-thread work whose request the client has cancelled."""
    context = current_request()
    if context is not None and context.cancelled.is_set():
        raise ToolError(f"Request {context.request_id!r} was cancelled")


def is_probably_binary(path: Path, sample_size: int = 8192) -> bool:
    with path.open("rb") as fh:
        return b"\0" in fh.read(sample_size)
