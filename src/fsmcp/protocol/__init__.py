"""Protocol layer — JSON-RPC envelopes, MCP payloads, framing and errors."""

from fsmcp.protocol.errors import (
    DuplicateNameError,
    FramingError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    NotFoundError,
    ProtocolError,
    ToolError,
)
from fsmcp.protocol.framing import decode_frame, encode_message, iter_frames, parse_message
from fsmcp.protocol.models import (
    JsonRpcError,
    JsonRpcMessage,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    PromptMessage,
    ToolResult,
)

__all__ = [
    "DuplicateNameError",
    "FramingError",
    "InvalidParamsError",
    "InvalidRequestError",
    "JsonRpcError",
    "JsonRpcMessage",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MethodNotFoundError",
    "NotFoundError",
    "PromptMessage",
    "ProtocolError",
    "ToolError",
    "ToolResult",
    "decode_frame",
    "encode_message",
    "iter_frames",
    "parse_message",
]
