"""File resources: discovered project files, the root listing and ``file://{path}``."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import TYPE_CHECKING
from urllib.parse import unquote

from fsmcp.handlers._paths import TEXT_EXTENSIONS, guess_mime
from fsmcp.protocol.errors import ToolError
from fsmcp.protocol.models import BlobResourceContents, TextResourceContents
from fsmcp.server.specs import ResourceSpec, ResourceTemplate

if TYPE_CHECKING:
    from pathlib import Path

    from fsmcp.handlers._paths import PathResolver
    from fsmcp.protocol.models import ResourceContents
    from fsmcp.server.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

FILE_SCHEME = "file://"
TEXT_SIZE_LIMIT = 512 * 1024

# (file name, MIME type, description)
PROJECT_FILES = (
    ("README.md", "text/markdown", "Project README"),
    ("pyproject.toml", "text/toml", "Python project metadata"),
    ("package.json", "application/json", "Node.js package manifest"),
    ("tsconfig.json", "application/json", "TypeScript configuration"),
    (".env", "text/plain", "Environment variables"),
)


class FileResources:
    """Reads ``file://`` URIs.

    A URI ending in ``/`` or naming a directory yields a text listing.  Files
    with a known text extension, or smaller than 512 KiB, are returned as
    text when they decode as UTF-8; everything else is a base64 blob.
    """

    def __init__(self, resolver: PathResolver) -> None:
        self._resolver = resolver

    async def read(self, uri: str, variables: dict[str, str]) -> ResourceContents:
        return await asyncio.to_thread(self._read, uri)

    def _read(self, uri: str) -> ResourceContents:
        if not uri.startswith(FILE_SCHEME):
            raise ToolError("Unsupported URI scheme. Only 'file://' URIs are supported.")

        raw = unquote(uri[len(FILE_SCHEME) :])
        if raw.endswith("/"):
            directory = self._resolver.resolve(raw.rstrip("/") or "/")
            listing = directory_listing(directory)
            return TextResourceContents(uri=uri, mime_type="text/plain", text=listing)

        path = self._resolver.resolve(raw)
        info = path.stat()
        if path.is_dir():
            listing = directory_listing(path)
            return TextResourceContents(uri=uri, mime_type="text/plain", text=listing)

        data = path.read_bytes()
        if path.suffix.lower() in TEXT_EXTENSIONS or info.st_size < TEXT_SIZE_LIMIT:
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug("%s is not UTF-8; returning a blob", path)
            else:
                return TextResourceContents(uri=uri, mime_type=_text_mime(path), text=text)
            return BlobResourceContents(
                uri=uri, mime_type=guess_mime(path), blob=base64.b64encode(data).decode("ascii")
            )

        return BlobResourceContents(
            uri=uri,
            mime_type="application/octet-stream",
            blob=base64.b64encode(data).decode("ascii"),
        )


def directory_listing(directory: Path) -> str:
    lines = [f"Directory listing: {directory}\n"]
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        prefix = "[DIR] " if entry.is_dir() else "[FILE]"
        lines.append(f"{prefix}  {entry.name}")
    return "\n".join(lines)


def _text_mime(path: Path) -> str:
    mime = guess_mime(path)
    if mime.startswith("text/") or mime == "application/json":
        return mime
    return "text/plain"


def root_uri(root: Path) -> str:
    return f"{FILE_SCHEME}{root.as_posix().rstrip('/')}/"


def register_file_resources(registry: CapabilityRegistry, resolver: PathResolver) -> FileResources:
    """Register discovered project files, the root directory and the file template."""
    resources = FileResources(resolver)
    root = resolver.root

    for name, mime, description in PROJECT_FILES:
        path = root / name
        if not path.is_file():
            continue
        registry.register_resource(
            ResourceSpec(
                uri=f"{FILE_SCHEME}{path.as_posix()}",
                name=name,
                reader=resources.read,
                description=f"{description} ({path})",
                mime_type=mime,
            )
        )

    registry.register_resource(
        ResourceSpec(
            uri=root_uri(root),
            name="Working Directory",
            reader=resources.read,
            description=f"Root directory: {root}",
            mime_type="text/plain",
        )
    )
    registry.register_resource(
        ResourceTemplate(
            uri_template=FILE_SCHEME + "{path}",
            name="File",
            reader=resources.read,
            description="Any file or directory, addressed by absolute path",
        )
    )
    return resources
