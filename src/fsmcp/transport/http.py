"""Streamable HTTP transport — one endpoint, many sessions.

``POST``   one JSON-RPC message; requests are answered in the reply body.
           Without an ``Mcp-Session-Id`` header only ``initialize`` is
           accepted, and it opens a new session.
``GET``    ``text/event-stream`` of server-initiated messages.
``DELETE`` closes the session.

Each session owns exactly one :class:`HttpSessionTransport`; the Starlette
app only routes bodies to it.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from fsmcp.protocol.errors import (
    FramingError,
    InvalidRequestError,
    ProtocolError,
    TransportClosedError,
)
from fsmcp.protocol.framing import decode_frame
from fsmcp.protocol.models import JsonRpcNotification, JsonRpcRequest, JsonRpcResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from starlette.requests import Request

    from fsmcp.protocol.models import JsonRpcMessage, RequestId
    from fsmcp.transport.base import TransportListener

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"
DEFAULT_PATH = "/mcp"


class HttpSessionTransport:
    """Transport for one HTTP session.

    Responses to POSTed requests are routed back to the waiting POST through
    a future keyed by request id.  Everything else the session sends goes to
    the event queue read by ``GET``.
    """

    def __init__(self) -> None:
        self._listener: TransportListener | None = None
        self._pending: dict[RequestId, asyncio.Future[JsonRpcResponse | None]] = {}
        self._events: asyncio.Queue[JsonRpcMessage | None] = asyncio.Queue()
        self._send_lock = asyncio.Lock()
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def start(self, listener: TransportListener) -> None:
        if self._listener is not None:
            msg = "Transport already started"
            raise RuntimeError(msg)
        self._listener = listener

    async def send(self, message: JsonRpcMessage) -> None:
        if self.closed:
            raise TransportClosedError("http session")
        async with self._send_lock:
            if isinstance(message, JsonRpcResponse) and message.id is not None:
                waiter = self._pending.pop(message.id, None)
                if waiter is not None and not waiter.done():
                    waiter.set_result(message)
                    return
            await self._events.put(message)

    async def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        for waiter in self._pending.values():
            if not waiter.done():
                waiter.set_exception(TransportClosedError("session closed"))
        self._pending.clear()
        await self._events.put(None)
        if self._listener is not None:
            await self._listener.on_close()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def is_pending(self, request_id: RequestId) -> bool:
        return request_id in self._pending

    async def deliver(self, message: JsonRpcMessage) -> JsonRpcResponse | None:
        """Hand one inbound message to the session.

        Returns the response for a request, or ``None`` for notifications,
        client responses and requests that were cancelled.

        Raises:
            TransportClosedError: The session closed before answering.
        """
        if self.closed or self._listener is None:
            raise TransportClosedError("http session")

        if not isinstance(message, JsonRpcRequest):
            await self._listener.on_message(message)
            if isinstance(message, JsonRpcNotification):
                self._release_cancelled(message)
            return None

        waiter: asyncio.Future[JsonRpcResponse | None] = asyncio.get_running_loop().create_future()
        self._pending[message.id] = waiter
        try:
            await self._listener.on_message(message)
            return await waiter
        finally:
            self._pending.pop(message.id, None)

    async def events(self) -> AsyncIterator[JsonRpcMessage]:
        """Yield server-initiated messages until the session closes."""
        while True:
            item = await self._events.get()
            if item is None:
                return
            yield item

    def _release_cancelled(self, notification: JsonRpcNotification) -> None:
        # A cancelled request gets no response; free the POST waiting on it.
        if notification.method != "notifications/cancelled":
            return
        request_id = notification.params.get("requestId")
        waiter = self._pending.get(request_id) if isinstance(request_id, (int, str)) else None
        if waiter is not None and not waiter.done():
            waiter.set_result(None)


class HttpSession(Protocol):
    """What the session manager needs from a session."""

    session_id: str

    async def open(self) -> None: ...
    async def close(self) -> None: ...


@dataclass
class _Entry:
    session: HttpSession
    transport: HttpSessionTransport


class HttpSessionManager:
    """Creates, looks up and tears down sessions keyed by ``Mcp-Session-Id``."""

    def __init__(self, session_factory: Callable[[HttpSessionTransport], HttpSession]) -> None:
        self._factory = session_factory
        self._sessions: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    async def create(self) -> _Entry:
        transport = HttpSessionTransport()
        session = self._factory(transport)
        await session.open()
        entry = _Entry(session=session, transport=transport)
        self._sessions[session.session_id] = entry
        logger.info("HTTP session %s opened", session.session_id)
        return entry

    def get(self, session_id: str) -> _Entry | None:
        entry = self._sessions.get(session_id)
        if entry is not None and entry.transport.closed:
            self._sessions.pop(session_id, None)
            return None
        return entry

    async def close(self, session_id: str) -> bool:
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False
        await entry.session.close()
        logger.info("HTTP session %s closed", session_id)
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    # -- request handlers ---------------------------------------------------

    async def handle_post(self, request: Request) -> Response:
        body = await request.body()
        try:
            message = decode_frame(body)
        except FramingError as exc:
            logger.warning("Rejecting POST body: %s", exc.message)
            return _rpc_error(exc.request_id, exc, status_code=400)

        session_id = request.headers.get(SESSION_HEADER)
        created = False
        if session_id is None:
            if not (isinstance(message, JsonRpcRequest) and message.method == "initialize"):
                error = InvalidRequestError(
                    f"Missing {SESSION_HEADER} header; send initialize first"
                )
                return _rpc_error(_message_id(message), error, status_code=400)
            entry = await self.create()
            created = True
        else:
            found = self.get(session_id)
            if found is None:
                return _rpc_error(
                    _message_id(message),
                    InvalidRequestError(f"Unknown session: {session_id}"),
                    status_code=404,
                )
            entry = found

        if isinstance(message, JsonRpcRequest) and entry.transport.is_pending(message.id):
            error = InvalidRequestError(f"Request id {message.id!r} is already in flight")
            return _rpc_error(message.id, error, status_code=409)

        try:
            response = await entry.transport.deliver(message)
        except TransportClosedError:
            return _rpc_error(
                _message_id(message),
                InvalidRequestError(f"Session closed: {entry.session.session_id}"),
                status_code=404,
            )

        if response is None:
            return Response(status_code=202)

        if created and response.is_error:
            await self.close(entry.session.session_id)
            return JSONResponse(response.to_wire())

        return JSONResponse(
            response.to_wire(), headers={SESSION_HEADER: entry.session.session_id}
        )

    async def handle_get(self, request: Request) -> Response:
        entry = self._lookup(request)
        if entry is None:
            return Response(status_code=404)

        async def stream() -> AsyncIterator[str]:
            async for message in entry.transport.events():
                yield f"event: message\ndata: {json.dumps(message.to_wire())}\n\n"

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={SESSION_HEADER: entry.session.session_id, "Cache-Control": "no-cache"},
        )

    async def handle_delete(self, request: Request) -> Response:
        session_id = request.headers.get(SESSION_HEADER)
        if session_id is None or not await self.close(session_id):
            return Response(status_code=404)
        return Response(status_code=204)

    def _lookup(self, request: Request) -> _Entry | None:
        session_id = request.headers.get(SESSION_HEADER)
        if session_id is None:
            return None
        return self.get(session_id)


def create_http_app(
    session_factory: Callable[[HttpSessionTransport], HttpSession],
    *,
    path: str = DEFAULT_PATH,
) -> Starlette:
    """Build the ASGI app serving MCP on *path*.

    The manager is exposed as ``app.state.sessions``.
    """
    manager = HttpSessionManager(session_factory)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        await manager.close_all()

    app = Starlette(
        routes=[
            Route(path, manager.handle_post, methods=["POST"]),
            Route(path, manager.handle_get, methods=["GET"]),
            Route(path, manager.handle_delete, methods=["DELETE"]),
        ],
        lifespan=lifespan,
    )
    app.state.sessions = manager
    return app


def _rpc_error(request_id: Any, exc: ProtocolError, *, status_code: int) -> JSONResponse:
    return JSONResponse(JsonRpcResponse.failure(request_id, exc).to_wire(), status_code=status_code)


def _message_id(message: JsonRpcMessage) -> RequestId | None:
    return message.id if isinstance(message, (JsonRpcRequest, JsonRpcResponse)) else None
