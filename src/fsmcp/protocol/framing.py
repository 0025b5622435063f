"""Message framing — newline-delimited JSON-RPC frames.

One frame is one UTF-8 JSON object terminated by ``\\n``.  JSON encoding
escapes embedded newlines, so a message never spans frames.

Decoding never raises past :func:`iter_frames`: a frame that cannot become a
message is yielded as a :class:`~fsmcp.protocol.errors.FramingError` so the
caller can answer it and keep reading.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from fsmcp.protocol.errors import INVALID_REQUEST, FramingError
from fsmcp.protocol.models import (
    JSONRPC_VERSION,
    JsonRpcMessage,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
)

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncIterator

DEFAULT_MAX_FRAME_BYTES = 16 * 1024 * 1024


def encode_message(message: JsonRpcMessage) -> bytes:
    """Encode *message* as one newline-terminated frame."""
    body = json.dumps(message.to_wire(), ensure_ascii=False, separators=(",", ":"))
    return (body + "\n").encode("utf-8")


def decode_frame(frame: bytes | str) -> JsonRpcMessage:
    """Decode a single frame (with or without its trailing newline).

    Raises:
        FramingError: ``PARSE_ERROR`` for undecodable bytes or JSON,
            ``INVALID_REQUEST`` for JSON that is not a JSON-RPC message.
    """
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FramingError(f"Parse error: frame is not valid UTF-8 ({exc})") from exc
    try:
        data = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise FramingError(f"Parse error: {exc.msg} at position {exc.pos}") from exc
    except RecursionError as exc:
        raise FramingError("Parse error: JSON nested too deeply") from exc
    return parse_message(data)


def parse_message(data: Any) -> JsonRpcMessage:
    """Classify an already-decoded JSON value as a request, notification or response."""
    if not isinstance(data, dict):
        kind = "array" if isinstance(data, list) else type(data).__name__
        raise FramingError(
            f"Invalid request: expected a JSON object, got {kind}", code=INVALID_REQUEST
        )

    request_id = _recover_id(data)

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise FramingError(
            "Invalid request: 'jsonrpc' must be \"2.0\"",
            code=INVALID_REQUEST,
            request_id=request_id,
        )

    if "method" in data:
        return _parse_call(data, request_id)

    if "id" in data and ("result" in data or "error" in data):
        try:
            return JsonRpcResponse.model_validate(data)
        except ValidationError as exc:
            raise FramingError(
                f"Invalid response: {_first_error(exc)}",
                code=INVALID_REQUEST,
                request_id=request_id,
            ) from exc

    raise FramingError(
        "Invalid request: message has neither 'method' nor a response outcome",
        code=INVALID_REQUEST,
        request_id=request_id,
    )


async def iter_frames(
    reader: asyncio.StreamReader,
) -> AsyncIterator[JsonRpcMessage | FramingError]:
    """Yield decoded messages (or framing errors) from *reader* until EOF.

    Calling it again on the same reader resumes after the last frame read.
    A fatal :class:`FramingError` is the last item yielded.
    """
    while True:
        try:
            line = await reader.readline()
        except ValueError as exc:
            # asyncio drops the overlong line; the stream stays usable
            yield FramingError(f"Parse error: frame exceeds size limit ({exc})")
            continue
        except OSError as exc:
            yield FramingError(f"Read failed: {exc}", fatal=True)
            return

        if not line:
            return
        if not line.endswith(b"\n"):
            yield FramingError("Stream closed in the middle of a frame", fatal=True)
            return
        if not line.strip():
            continue

        try:
            message = decode_frame(line)
        except FramingError as exc:
            yield exc
            continue
        yield message


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_call(data: dict[str, Any], request_id: str | int | None) -> JsonRpcMessage:
    method = data["method"]
    if not isinstance(method, str) or not method:
        raise FramingError(
            "Invalid request: 'method' must be a non-empty string",
            code=INVALID_REQUEST,
            request_id=request_id,
        )

    params = data.get("params")
    if params is None:
        params = {}
    elif not isinstance(params, dict):
        raise FramingError(
            "Invalid request: 'params' must be an object",
            code=INVALID_REQUEST,
            request_id=request_id,
        )

    if "id" not in data:
        return JsonRpcNotification(method=method, params=params)

    if request_id is None:
        raise FramingError(
            "Invalid request: 'id' must be a string or an integer",
            code=INVALID_REQUEST,
        )
    return JsonRpcRequest(id=request_id, method=method, params=params)


def _recover_id(data: dict[str, Any]) -> str | int | None:
    raw = data.get("id")
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        return None
    return raw


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    return str(errors[0].get("msg", exc))

