"""MCPServer — builds the catalog once and hands out sessions per transport.

Usage::

    server = MCPServer(ServerSettings(root=Path(".")))
    await server.serve_stdio()

    # or, behind uvicorn
    app = server.http_app()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fsmcp.config import ServerSettings
from fsmcp.handlers import register_all
from fsmcp.protocol.models import Implementation
from fsmcp.server.dispatcher import Dispatcher
from fsmcp.server.registry import CapabilityRegistry
from fsmcp.server.session import Session
from fsmcp.transport.http import create_http_app
from fsmcp.transport.stdio import StdioTransport

if TYPE_CHECKING:
    from starlette.applications import Starlette

    from fsmcp.transport.base import Transport

logger = logging.getLogger(__name__)


class MCPServer:
    """Owns the registry and the dispatcher shared by every session.

    Args:
        settings: Server configuration; defaults to :class:`ServerSettings()`.
        registry: A pre-populated registry.  When omitted, the reference
            handlers are registered against ``settings.root``.
    """

    def __init__(
        self,
        settings: ServerSettings | None = None,
        *,
        registry: CapabilityRegistry | None = None,
    ) -> None:
        self.settings = settings or ServerSettings()
        if registry is None:
            registry = CapabilityRegistry()
            register_all(registry, self.settings)
        self.registry = registry
        self._dispatcher: Dispatcher | None = None

    @property
    def dispatcher(self) -> Dispatcher:
        """The shared dispatcher; building it freezes the registry."""
        if self._dispatcher is None:
            self.registry.freeze()
            self._dispatcher = Dispatcher(
                self.registry,
                server_info=Implementation(name=self.settings.name, version=self.settings.version),
                instructions=self.settings.instructions,
            )
        return self._dispatcher

    def create_session(self, transport: Transport) -> Session:
        """Bind a new session to *transport*."""
        return Session(
            self.dispatcher,
            transport,
            request_timeout=self.settings.request_timeout,
        )

    async def serve_stdio(self) -> None:
        """Serve one session over stdin/stdout until the input closes."""
        transport = StdioTransport(max_frame_bytes=self.settings.max_frame_bytes)
        session = self.create_session(transport)
        logger.info("Serving %s over stdio (root=%s)", self.settings.name, self.settings.root)
        await session.run()

    def http_app(self) -> Starlette:
        """ASGI app serving streamable HTTP on ``settings.transport.path``."""
        return create_http_app(self.create_session, path=self.settings.transport.path)

    async def serve_http(self) -> None:
        """Run :meth:`http_app` under uvicorn until interrupted."""
        import uvicorn

        options = self.settings.transport
        config = uvicorn.Config(
            self.http_app(),
            host=options.host,
            port=options.port,
            log_config=None,
            log_level=self.settings.logging.level.lower(),
        )
        logger.info(
            "Serving %s over HTTP at http://%s:%d%s (root=%s)",
            self.settings.name,
            options.host,
            options.port,
            options.path,
            self.settings.root,
        )
        await uvicorn.Server(config).serve()
