"""Per-session and per-request state handed to the dispatcher."""

from __future__ import annotations

import asyncio
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fsmcp.protocol.models import Implementation, LoggingLevel, RequestId


@dataclass
class PeerState:
    """What the session learned about the client during the handshake."""

    client_info: Implementation | None = None
    client_capabilities: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())
    protocol_version: str | None = None
    log_level: LoggingLevel = "info"


@dataclass
class RequestContext:
    """Travels alongside one dispatched request.

    ``cancelled`` is set when the client sends ``notifications/cancelled``
    for this request or the session closes.  Handlers reach it through
    :func:`current_request` and may poll it to stop early.
    """

    request_id: RequestId
    peer: PeerState
    session_id: str = ""
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)


_current_request: ContextVar[RequestContext | None] = ContextVar(
    "fsmcp_current_request", default=None
)


def current_request() -> RequestContext | None:
    """The context of the request being dispatched in this task, if any.

    Set for the duration of :meth:`Dispatcher.dispatch`, so tool handlers,
    resource readers and prompt generators see it, including work they hand
    to ``asyncio.to_thread``.
    """
    return _current_request.get()


def bind_request(context: RequestContext) -> Token[RequestContext | None]:
    return _current_request.set(context)


def unbind_request(token: Token[RequestContext | None]) -> None:
    _current_request.reset(token)
