"""Session — lifecycle state machine and per-request concurrency.

One session is bound to exactly one transport.  The session is the
transport's listener: the read pump hands it messages, and every request is
dispatched in its own task, so a handler that never finishes cannot hold up
later requests.  Responses are written through the transport, whose send is
the single serialization point.

States::

    UNCONNECTED --open()--> NEGOTIATING --initialized--> READY --> CLOSED
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from fsmcp.protocol.errors import InvalidRequestError, RequestTimeoutError, TransportClosedError
from fsmcp.protocol.models import (
    CancelledParams,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
)
from fsmcp.server.context import PeerState, RequestContext

if TYPE_CHECKING:
    from fsmcp.protocol.errors import FramingError
    from fsmcp.protocol.models import JsonRpcMessage, RequestId
    from fsmcp.server.dispatcher import Dispatcher
    from fsmcp.transport.base import Transport

logger = logging.getLogger(__name__)

# Requests served in any non-closed state.
_ALWAYS_ALLOWED = frozenset({"initialize", "ping"})


class SessionState(enum.Enum):
    UNCONNECTED = "unconnected"
    NEGOTIATING = "negotiating"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class _InFlight:
    request: JsonRpcRequest
    context: RequestContext
    task: asyncio.Task[None]


class Session:
    """Drives one client connection from handshake to shutdown.

    Usage::

        session = Session(dispatcher, StdioTransport())
        await session.run()   # returns once the transport closes

    Args:
        dispatcher: Shared, stateless request router.
        transport: The channel this session owns.
        session_id: Identifier used in logs and by the HTTP transport.
        request_timeout: Seconds before a request is answered with a
            timeout error.  ``None`` disables the deadline.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        transport: Transport,
        *,
        session_id: str | None = None,
        request_timeout: float | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.peer = PeerState()
        self._dispatcher = dispatcher
        self._transport = transport
        self._request_timeout = request_timeout
        self._state = SessionState.UNCONNECTED
        self._initialize_pending = False
        self._initialize_done = False
        self._in_flight: dict[RequestId, _InFlight] = {}
        # Timed-out dispatches still running; their results are discarded.
        self._background: set[asyncio.Future[JsonRpcResponse]] = set()
        self._closed = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def in_flight(self) -> tuple[RequestId, ...]:
        return tuple(self._in_flight)

    # -- lifecycle ----------------------------------------------------------

    async def open(self) -> None:
        """Attach the transport and start receiving messages."""
        if self._state is not SessionState.UNCONNECTED:
            msg = f"Session {self.session_id} cannot be opened from state {self._state.value}"
            raise RuntimeError(msg)
        self._state = SessionState.NEGOTIATING
        logger.info("Session %s negotiating", self.session_id)
        await self._transport.start(self)

    async def run(self) -> None:
        """Open the session and wait until it closes."""
        await self.open()
        try:
            await self._closed.wait()
        finally:
            await self.close()

    async def close(self) -> None:
        """Move to CLOSED, cancel in-flight work and close the transport. Idempotent."""
        if self._state is SessionState.CLOSED:
            return
        self._state = SessionState.CLOSED

        current = asyncio.current_task()
        pending: list[asyncio.Future[Any]] = []
        for entry in self._in_flight.values():
            if entry.task is not current:
                entry.context.cancelled.set()
                entry.task.cancel()
                pending.append(entry.task)
        for work in self._background:
            work.cancel()
            pending.append(work)
        if pending:
            logger.info(
                "Session %s discarding %d in-flight request(s)", self.session_id, len(pending)
            )
            await asyncio.gather(*pending, return_exceptions=True)

        await self._transport.close()
        self._closed.set()
        logger.info("Session %s closed", self.session_id)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def send(self, message: JsonRpcMessage) -> None:
        """Write *message* unless the session or its transport is gone."""
        if self._state is SessionState.CLOSED:
            logger.debug(
                "Session %s closed; dropping outgoing %s", self.session_id, _describe(message)
            )
            return
        try:
            await self._transport.send(message)
        except TransportClosedError:
            logger.debug("Transport closed; dropping outgoing %s", _describe(message))
        except OSError as exc:
            logger.warning("Session %s write failed (%s); closing", self.session_id, exc)
            await self.close()

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a server-initiated notification."""
        await self.send(JsonRpcNotification(method=method, params=params or {}))

    # -- TransportListener --------------------------------------------------

    async def on_message(self, message: JsonRpcMessage) -> None:
        if self._state is SessionState.CLOSED:
            logger.debug("Session %s closed; ignoring %s", self.session_id, _describe(message))
            return

        if isinstance(message, JsonRpcRequest):
            await self._accept_request(message)
        elif isinstance(message, JsonRpcNotification):
            await self._handle_notification(message)
        else:
            logger.info("Ignoring response id=%r: this server sends no requests", message.id)

    async def on_frame_error(self, error: FramingError) -> None:
        logger.warning("Session %s received a bad frame: %s", self.session_id, error.message)
        if error.fatal:
            await self.close()
            return
        await self.send(JsonRpcResponse.failure(error.request_id, error))

    async def on_close(self) -> None:
        await self.close()

    async def on_input_end(self) -> None:
        """Let accepted requests finish and answer before the transport closes."""
        tasks = [entry.task for entry in self._in_flight.values()]
        if not tasks:
            return
        logger.info(
            "Session %s input ended; waiting for %d request(s)", self.session_id, len(tasks)
        )
        await asyncio.wait(tasks)

    # -- requests -----------------------------------------------------------

    async def _accept_request(self, request: JsonRpcRequest) -> None:
        if request.id in self._in_flight:
            logger.warning(
                "Dropping %s: request id %r is already in flight", request.method, request.id
            )
            return

        rejection = self._lifecycle_violation(request)
        if rejection is not None:
            logger.warning(
                "Rejecting %s (id=%r): %s", request.method, request.id, rejection.message
            )
            await self.send(JsonRpcResponse.failure(request.id, rejection))
            return

        if request.method == "initialize":
            self._initialize_pending = True

        context = RequestContext(request_id=request.id, peer=self.peer, session_id=self.session_id)
        task = asyncio.create_task(
            self._run_request(request, context), name=f"fsmcp-request-{request.id}"
        )
        self._in_flight[request.id] = _InFlight(request=request, context=context, task=task)

    def _lifecycle_violation(self, request: JsonRpcRequest) -> InvalidRequestError | None:
        if request.method == "initialize":
            if self._initialize_pending or self._initialize_done:
                return InvalidRequestError("Session already initialized")
            return None
        if request.method in _ALWAYS_ALLOWED or self._state is SessionState.READY:
            return None
        return InvalidRequestError("Session not initialized", data={"method": request.method})

    async def _run_request(self, request: JsonRpcRequest, context: RequestContext) -> None:
        try:
            response = await self._dispatch_with_deadline(request, context)
        except asyncio.CancelledError:
            logger.debug("Request %r (%s) cancelled", request.id, request.method)
            raise
        finally:
            self._in_flight.pop(request.id, None)
            if request.method == "initialize":
                self._initialize_pending = False

        if request.method == "initialize" and not response.is_error:
            self._initialize_done = True
            logger.info(
                "Session %s initialize answered (client=%s, protocol=%s)",
                self.session_id,
                self.peer.client_info.name if self.peer.client_info else "?",
                self.peer.protocol_version,
            )
        await self.send(response)

    async def _dispatch_with_deadline(
        self, request: JsonRpcRequest, context: RequestContext
    ) -> JsonRpcResponse:
        if self._request_timeout is None:
            return await self._dispatcher.dispatch(request, context)

        work = asyncio.ensure_future(self._dispatcher.dispatch(request, context))
        try:
            done, _ = await asyncio.wait({work}, timeout=self._request_timeout)
        except asyncio.CancelledError:
            work.cancel()
            raise
        if work in done:
            return work.result()

        self._background.add(work)
        work.add_done_callback(self._discard_late_result)
        logger.warning(
            "Request %r (%s) timed out after %ss", request.id, request.method, self._request_timeout
        )
        return JsonRpcResponse.failure(
            request.id, RequestTimeoutError(request.method, self._request_timeout)
        )

    def _discard_late_result(self, work: asyncio.Future[JsonRpcResponse]) -> None:
        self._background.discard(work)
        if work.cancelled():
            return
        if work.exception() is None:
            logger.debug("Discarding late response for request %r", work.result().id)

    # -- notifications ------------------------------------------------------

    async def _handle_notification(self, notification: JsonRpcNotification) -> None:
        method = notification.method

        if method == "notifications/initialized":
            if not self._initialize_done:
                logger.warning("Ignoring %s: initialize has not been answered", method)
                return
            if self._state is SessionState.NEGOTIATING:
                self._state = SessionState.READY
                logger.info("Session %s ready", self.session_id)
            return

        if method == "notifications/cancelled":
            self._cancel(notification.params)
            return

        if self._state is not SessionState.READY:
            logger.warning("Dropping %s: session not initialized", method)
            return

        await self._dispatcher.notify(notification, self.peer)

    def _cancel(self, params: dict[str, Any]) -> None:
        try:
            cancelled = CancelledParams.model_validate(params)
        except ValidationError:
            logger.warning("Ignoring malformed cancellation: %r", params)
            return

        entry = self._in_flight.get(cancelled.request_id)
        if entry is None:
            logger.debug("Cancellation for unknown or finished request %r", cancelled.request_id)
            return
        if entry.request.method == "initialize":
            logger.warning("Ignoring cancellation of initialize request %r", cancelled.request_id)
            return

        logger.info(
            "Cancelling request %r (%s): %s",
            cancelled.request_id,
            entry.request.method,
            cancelled.reason or "no reason given",
        )
        entry.context.cancelled.set()
        entry.task.cancel()


def _describe(message: JsonRpcMessage) -> str:
    if isinstance(message, JsonRpcResponse):
        return f"response id={message.id!r}"
    return message.method
