"""Catalog entries and the handler protocols they reference.

A spec *references* its handler; it never owns the dispatcher.  Handlers are
plain async callables so that concrete implementations (filesystem, code
analysis, test fakes) are interchangeable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from fsmcp.protocol.models import (
    PromptArgument,
    PromptInfo,
    ResourceInfo,
    ResourceTemplateInfo,
    ToolInfo,
)

if TYPE_CHECKING:
    from fsmcp.protocol.models import PromptMessage, ResourceContents, ToolResult


@runtime_checkable
class ToolHandler(Protocol):
    """Invoked with arguments that already passed the tool's input schema.

    The request's :class:`~fsmcp.server.context.RequestContext`, including its
    ``cancelled`` event, is available from
    :func:`~fsmcp.server.context.current_request`.
    """

    async def __call__(self, arguments: dict[str, Any]) -> ToolResult | str: ...


@runtime_checkable
class ResourceReader(Protocol):
    """Reads a resolved URI; *variables* holds template bindings (empty for static)."""

    async def __call__(
        self, uri: str, variables: dict[str, str]
    ) -> ResourceContents | list[ResourceContents]: ...


@runtime_checkable
class PromptGenerator(Protocol):
    """Turns prompt argument values into role-tagged messages."""

    async def __call__(self, arguments: dict[str, str]) -> list[PromptMessage]: ...


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    """A named, schema-validated action the host can invoke."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler

    def info(self) -> ToolInfo:
        return ToolInfo(
            name=self.name, description=self.description, input_schema=self.input_schema
        )


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceSpec:
    """A concrete resource addressed by one exact URI."""

    uri: str
    name: str
    reader: ResourceReader
    description: str = ""
    mime_type: str | None = None

    def info(self) -> ResourceInfo:
        return ResourceInfo(
            uri=self.uri,
            name=self.name,
            description=self.description or None,
            mime_type=self.mime_type,
        )


_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def compile_uri_template(template: str) -> tuple[re.Pattern[str], tuple[str, ...]]:
    """Compile ``scheme://{var}/...`` into an anchored regex.

    Each placeholder matches one or more characters (``/`` included),
    non-greedily, so ``file://{path}`` matches any absolute file URI.
    """
    parts: list[str] = []
    names: list[str] = []
    pos = 0
    for match in _PLACEHOLDER.finditer(template):
        name = match.group(1)
        if name in names:
            msg = f"URI template {template!r} repeats variable {name!r}"
            raise ValueError(msg)
        parts.append(re.escape(template[pos : match.start()]))
        parts.append(f"(?P<{name}>.+?)")
        names.append(name)
        pos = match.end()
    parts.append(re.escape(template[pos:]))
    return re.compile("".join(parts), re.DOTALL), tuple(names)


@dataclass(frozen=True)
class ResourceTemplate:
    """A family of resources matched by a URI pattern such as ``file://{path}``."""

    uri_template: str
    name: str
    reader: ResourceReader
    description: str = ""
    mime_type: str | None = None
    _pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)
    variables: tuple[str, ...] = field(init=False, compare=False)

    def __post_init__(self) -> None:
        pattern, variables = compile_uri_template(self.uri_template)
        object.__setattr__(self, "_pattern", pattern)
        object.__setattr__(self, "variables", variables)

    def match(self, uri: str) -> dict[str, str] | None:
        """Return variable bindings when *uri* matches, else ``None``."""
        found = self._pattern.fullmatch(uri)
        if found is None:
            return None
        return found.groupdict()

    def info(self) -> ResourceTemplateInfo:
        return ResourceTemplateInfo(
            uri_template=self.uri_template,
            name=self.name,
            description=self.description or None,
            mime_type=self.mime_type,
        )


@dataclass(frozen=True)
class ResolvedResource:
    """Outcome of :meth:`CapabilityRegistry.resolve_resource`."""

    uri: str
    reader: ResourceReader
    variables: dict[str, str]
    source: ResourceSpec | ResourceTemplate

    async def read(self) -> ResourceContents | list[ResourceContents]:
        return await self.reader(self.uri, self.variables)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PromptSpec:
    """A named message-template generator with ordered argument specs."""

    name: str
    description: str
    generate: PromptGenerator
    arguments: tuple[PromptArgument, ...] = ()

    @property
    def required_arguments(self) -> list[str]:
        return [arg.name for arg in self.arguments if arg.required]

    def info(self) -> PromptInfo:
        return PromptInfo(
            name=self.name, description=self.description, arguments=list(self.arguments)
        )
