"""Standard-stream transport — newline-delimited JSON over stdin/stdout.

stdout carries protocol frames only; anything else written there corrupts
the channel, which is why logging is configured onto stderr.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING, Any

from fsmcp.protocol.errors import FramingError, TransportClosedError
from fsmcp.protocol.framing import DEFAULT_MAX_FRAME_BYTES, encode_message, iter_frames

if TYPE_CHECKING:
    from fsmcp.protocol.models import JsonRpcMessage
    from fsmcp.transport.base import TransportListener

logger = logging.getLogger(__name__)


class StdioTransport:
    """Reads frames from *reader* and writes frames to *writer*.

    When no streams are given, the process's stdin/stdout are wrapped in
    asyncio streams on :meth:`start`.  Tests pass an ``asyncio.StreamReader``
    fed by hand and any writer with ``write()`` and ``async drain()``.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        writer: Any = None,
        *,
        max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._owns_streams = reader is None and writer is None
        self._max_frame_bytes = max_frame_bytes
        self._listener: TransportListener | None = None
        self._pump: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def start(self, listener: TransportListener) -> None:
        """Begin delivering inbound messages to *listener*."""
        if self._pump is not None:
            msg = "Transport already started"
            raise RuntimeError(msg)
        if self._reader is None or self._writer is None:
            await self._connect_std_streams()

        self._listener = listener
        self._pump = asyncio.create_task(self._read_loop(), name="fsmcp-stdio-pump")
        logger.debug("stdio transport started")

    async def send(self, message: JsonRpcMessage) -> None:
        """Write one frame; concurrent callers are serialized."""
        if self.closed or self._writer is None:
            raise TransportClosedError("stdio")
        frame = encode_message(message)
        async with self._write_lock:
            self._writer.write(frame)
            await self._writer.drain()

    async def close(self) -> None:
        """Stop reading, release owned streams and notify the listener once."""
        if self.closed:
            return
        self._closed.set()

        pump = self._pump
        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump

        if self._owns_streams and self._writer is not None:
            self._writer.close()

        logger.debug("stdio transport closed")
        if self._listener is not None:
            await self._listener.on_close()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # -- internals ----------------------------------------------------------

    async def _read_loop(self) -> None:
        assert self._reader is not None
        assert self._listener is not None
        try:
            async for item in iter_frames(self._reader):
                if isinstance(item, FramingError):
                    await self._listener.on_frame_error(item)
                    if item.fatal:
                        return
                    continue
                await self._listener.on_message(item)
            logger.debug("stdio input ended")
            await self._listener.on_input_end()
        finally:
            if not self.closed:
                await self.close()

    async def _connect_std_streams(self) -> None:
        loop = asyncio.get_running_loop()

        reader = asyncio.StreamReader(limit=self._max_frame_bytes)
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        write_transport, write_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout
        )
        self._reader = reader
        self._writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
