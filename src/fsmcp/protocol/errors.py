"""Error types for the protocol layer.

Two tiers are kept apart:

* :class:`ProtocolError` subclasses become JSON-RPC ``error`` responses.
* :class:`ToolError` is a domain failure raised by a tool handler; the
  dispatcher turns it into a successful response with ``isError: true``.

Registry errors are raised at startup, before any session exists.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# JSON-RPC error codes
# ---------------------------------------------------------------------------

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
HANDLER_ERROR = -32000
REQUEST_TIMEOUT = -32001


class ProtocolError(Exception):
    """Base error for everything reported as a JSON-RPC error response."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None) -> None:
        self.message = message
        self.data = data
        super().__init__(message)


class InvalidRequestError(ProtocolError):
    """A frame decoded but is not a well-formed JSON-RPC message."""

    code = INVALID_REQUEST


class MethodNotFoundError(ProtocolError):
    """Unknown method, or a method whose capability the server does not serve."""

    code = METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Method not found: {method}", data={"method": method})


class InvalidParamsError(ProtocolError):
    """Params fail validation or reference an unknown name."""

    code = INVALID_PARAMS


class InternalError(ProtocolError):
    """Unanticipated fault inside the dispatcher itself."""

    code = INTERNAL_ERROR


class HandlerError(ProtocolError):
    """A resource reader or prompt generator failed."""

    code = HANDLER_ERROR


class RequestTimeoutError(ProtocolError):
    """A request exceeded the configured deadline."""

    code = REQUEST_TIMEOUT

    def __init__(self, method: str, timeout: float) -> None:
        self.method = method
        self.timeout = timeout
        super().__init__(
            f"Request '{method}' timed out after {timeout}s",
            data={"timeout": timeout},
        )


class FramingError(ProtocolError):
    """A frame could not be turned into a message.

    ``request_id`` is set when the id could still be recovered from a frame
    that was valid JSON. ``fatal`` marks faults the stream cannot recover
    from (e.g. the channel closed in the middle of a frame).
    """

    def __init__(
        self,
        message: str,
        *,
        code: int = PARSE_ERROR,
        request_id: str | int | None = None,
        fatal: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.request_id = request_id
        self.fatal = fatal


class TransportClosedError(ProtocolError):
    """The transport was closed before the operation completed."""

    def __init__(self, detail: str = "") -> None:
        super().__init__("Transport closed" + (f": {detail}" if detail else ""))


# ---------------------------------------------------------------------------
# Domain tier
# ---------------------------------------------------------------------------


class ToolError(Exception):
    """An anticipated failure inside a tool handler (file missing, denied, ...)."""


# ---------------------------------------------------------------------------
# Registry (startup) errors
# ---------------------------------------------------------------------------


class RegistryError(Exception):
    """Base error for capability registry failures."""


class DuplicateNameError(RegistryError):
    """A tool, prompt, resource URI or template was registered twice."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"Duplicate {kind}: {name}")


class NotFoundError(RegistryError):
    """No static resource or template matches a URI."""

    def __init__(self, uri: str) -> None:
        self.uri = uri
        super().__init__(f"Resource not found: {uri}")


class RegistryFrozenError(RegistryError):
    """Registration attempted after the registry was frozen."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"Cannot register {kind} '{name}': registry is frozen")
