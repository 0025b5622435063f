"""Transport abstraction — the seam between the protocol core and a channel.

A transport delivers inbound messages to a :class:`TransportListener` (the
session) and accepts outgoing messages through :meth:`Transport.send`.
Swapping stdio for HTTP changes nothing above this module.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from fsmcp.protocol.errors import FramingError
    from fsmcp.protocol.models import JsonRpcMessage


@runtime_checkable
class TransportListener(Protocol):
    """Receives inbound events from exactly one transport.

    ``on_input_end`` fires when the peer stops sending cleanly but the
    outbound half still works; ``on_close`` follows once the transport closes.
    """

    async def on_message(self, message: JsonRpcMessage) -> None: ...
    async def on_frame_error(self, error: FramingError) -> None: ...
    async def on_close(self) -> None: ...
    async def on_input_end(self) -> None: ...


@runtime_checkable
class Transport(Protocol):
    """A bidirectional message channel bound to one session.

    ``send`` must be safe to call from concurrent tasks: two frames are never
    interleaved on the wire.  After ``close`` (or after the peer goes away),
    ``send`` raises :class:`~fsmcp.protocol.errors.TransportClosedError`.
    """

    @property
    def closed(self) -> bool: ...

    async def start(self, listener: TransportListener) -> None: ...
    async def send(self, message: JsonRpcMessage) -> None: ...
    async def close(self) -> None: ...
    async def wait_closed(self) -> None: ...
