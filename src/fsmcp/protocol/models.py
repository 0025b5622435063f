"""Protocol models — JSON-RPC 2.0 envelopes and MCP payloads.

Envelopes (:class:`JsonRpcRequest`, :class:`JsonRpcNotification`,
:class:`JsonRpcResponse`) are what the framing layer produces and consumes.
Payload models describe the ``params`` and ``result`` shapes of the methods
the server answers; they serialize with camelCase aliases via :meth:`wire`.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fsmcp.protocol.errors import ProtocolError

JSONRPC_VERSION = "2.0"
LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

RequestId = int | str

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message (expects exactly one response)."""

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id, "method": self.method}
        if self.params:
            data["params"] = self.params
        return data


class JsonRpcNotification(BaseModel):
    """A JSON-RPC 2.0 notification (no id, never answered)."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params:
            data["params"] = self.params
        return data


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None

    @classmethod
    def from_exception(cls, exc: ProtocolError) -> JsonRpcError:
        return cls(code=exc.code, message=exc.message, data=exc.data)


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response carrying either ``result`` or ``error``.

    ``id`` is ``None`` only for errors about frames whose id could not be
    recovered.
    """

    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId | None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> JsonRpcResponse:
        if (self.result is None) == (self.error is None):
            msg = "response must carry exactly one of 'result' or 'error'"
            raise ValueError(msg)
        if self.id is None and self.error is None:
            msg = "a successful response needs an id"
            raise ValueError(msg)
        return self

    @classmethod
    def success(cls, request_id: RequestId, result: dict[str, Any]) -> JsonRpcResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: RequestId | None, exc: ProtocolError) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError.from_exception(exc))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result
        return data


JsonRpcMessage = JsonRpcRequest | JsonRpcNotification | JsonRpcResponse


# ---------------------------------------------------------------------------
# MCP payloads
# ---------------------------------------------------------------------------


class WireModel(BaseModel):
    """Base for MCP payloads: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Implementation(WireModel):
    """Name and version of a peer (``clientInfo`` / ``serverInfo``)."""

    name: str
    version: str = ""


class InitializeParams(WireModel):
    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    client_info: Implementation = Field(alias="clientInfo")


class ToolsCapability(WireModel):
    list_changed: bool = Field(default=False, alias="listChanged")


class ResourcesCapability(WireModel):
    subscribe: bool = False
    list_changed: bool = Field(default=False, alias="listChanged")


class PromptsCapability(WireModel):
    list_changed: bool = Field(default=False, alias="listChanged")


class ServerCapabilities(WireModel):
    """Capability families this server promises to serve.

    A ``None`` family is not advertised, and its methods are answered with
    *method not found*.
    """

    tools: ToolsCapability | None = None
    resources: ResourcesCapability | None = None
    prompts: PromptsCapability | None = None
    logging: dict[str, Any] | None = None

    def declares(self, family: str) -> bool:
        return getattr(self, family, None) is not None


class InitializeResult(WireModel):
    protocol_version: str = Field(alias="protocolVersion")
    capabilities: ServerCapabilities
    server_info: Implementation = Field(alias="serverInfo")
    instructions: str | None = None


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


class TextResourceContents(WireModel):
    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    text: str


class BlobResourceContents(WireModel):
    """Binary resource contents, base64-encoded in ``blob``."""

    uri: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    blob: str


ResourceContents = TextResourceContents | BlobResourceContents


class TextContent(WireModel):
    """Plain text content block."""

    type: Literal["text"] = "text"
    text: str


class ImageContent(WireModel):
    """Binary image content block (base64 ``data``)."""

    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(alias="mimeType")


class EmbeddedResource(WireModel):
    """A resource's contents embedded in a tool result or prompt message."""

    type: Literal["resource"] = "resource"
    resource: ResourceContents


ContentBlock = Annotated[
    TextContent | ImageContent | EmbeddedResource,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolInfo(WireModel):
    """A tool definition as returned by ``tools/list``."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class CallToolParams(WireModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(WireModel):
    """The result of a tool invocation.

    ``is_error`` marks a domain failure the calling model should read and
    react to; it is still a successful protocol response.
    """

    content: list[ContentBlock] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def text(cls, text: str) -> ToolResult:
        """Create a successful result with a single text block."""
        return cls(content=[TextContent(text=text)])

    @classmethod
    def error(cls, message: str) -> ToolResult:
        """Create an ``isError`` result with a single text block."""
        return cls(content=[TextContent(text=f"ERROR: {message}")], is_error=True)

    @property
    def joined_text(self) -> str:
        return "\n".join(block.text for block in self.content if isinstance(block, TextContent))

    def wire(self) -> dict[str, Any]:
        data = super().wire()
        data["isError"] = self.is_error
        return data


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class ResourceInfo(WireModel):
    uri: str
    name: str
    description: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class ResourceTemplateInfo(WireModel):
    uri_template: str = Field(alias="uriTemplate")
    name: str
    description: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class ReadResourceParams(WireModel):
    uri: str


class ReadResourceResult(WireModel):
    contents: list[ResourceContents]


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class PromptArgument(WireModel):
    name: str
    description: str = ""
    required: bool = False


class PromptInfo(WireModel):
    name: str
    description: str = ""
    arguments: list[PromptArgument] = Field(default_factory=list)


class PromptMessage(WireModel):
    """A role-tagged message produced by a prompt generator."""

    role: Literal["user", "assistant"]
    content: ContentBlock

    @classmethod
    def user(cls, text: str) -> PromptMessage:
        return cls(role="user", content=TextContent(text=text))

    @classmethod
    def assistant(cls, text: str) -> PromptMessage:
        return cls(role="assistant", content=TextContent(text=text))


class GetPromptParams(WireModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class GetPromptResult(WireModel):
    description: str | None = None
    messages: list[PromptMessage]


# ---------------------------------------------------------------------------
# Logging and cancellation
# ---------------------------------------------------------------------------

LoggingLevel = Literal[
    "debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"
]


class SetLevelParams(WireModel):
    level: LoggingLevel


class CancelledParams(WireModel):
    request_id: RequestId = Field(alias="requestId")
    reason: str | None = None
