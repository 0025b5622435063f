"""Shared fixtures: a small in-memory catalog and a transport that records writes."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import pytest

from fsmcp.protocol.errors import ToolError, TransportClosedError
from fsmcp.protocol.models import (
    Implementation,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    PromptArgument,
    PromptMessage,
    TextResourceContents,
)
from fsmcp.server.context import current_request
from fsmcp.server.dispatcher import Dispatcher
from fsmcp.server.registry import CapabilityRegistry
from fsmcp.server.specs import PromptSpec, ResourceSpec, ResourceTemplate, ToolSpec

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fsmcp.protocol.models import JsonRpcMessage, RequestId
    from fsmcp.server.context import RequestContext
    from fsmcp.transport.base import TransportListener

ECHO_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
    "additionalProperties": False,
}
EMPTY_SCHEMA: dict[str, Any] = {"type": "object"}


class Calls:
    """Records handler invocations so tests can assert a handler never ran."""

    def __init__(self) -> None:
        self.log: list[tuple[str, Any]] = []
        self.release = asyncio.Event()
        # Request contexts seen by ``wait`` as it finished or was cancelled.
        self.contexts: list[RequestContext | None] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.log]


@pytest.fixture(autouse=True)
def _restore_fsmcp_logger() -> Iterator[None]:
    logger = logging.getLogger("fsmcp")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def calls() -> Calls:
    return Calls()


@pytest.fixture
def registry(calls: Calls) -> CapabilityRegistry:
    registry = CapabilityRegistry()

    async def echo(arguments: dict[str, Any]) -> str:
        calls.log.append(("echo", arguments))
        return arguments["text"]

    async def fail(arguments: dict[str, Any]) -> str:
        calls.log.append(("fail", arguments))
        raise ToolError("disk on fire")

    async def boom(arguments: dict[str, Any]) -> str:
        calls.log.append(("boom", arguments))
        raise RuntimeError("unexpected")

    async def wait(arguments: dict[str, Any]) -> str:
        calls.log.append(("wait", arguments))
        context = current_request()
        try:
            await calls.release.wait()
        finally:
            calls.contexts.append(context)
        return "released"

    for name, handler, schema in (
        ("echo", echo, ECHO_SCHEMA),
        ("fail", fail, EMPTY_SCHEMA),
        ("boom", boom, EMPTY_SCHEMA),
        ("wait", wait, EMPTY_SCHEMA),
    ):
        registry.register_tool(
            ToolSpec(name=name, description=f"{name} tool", input_schema=schema, handler=handler)
        )

    async def read_note(uri: str, variables: dict[str, str]) -> TextResourceContents:
        calls.log.append(("read_note", variables))
        return TextResourceContents(uri=uri, mime_type="text/plain", text="static note")

    async def read_item(uri: str, variables: dict[str, str]) -> TextResourceContents:
        calls.log.append(("read_item", variables))
        text = f"item {variables['item']}"
        return TextResourceContents(uri=uri, mime_type="text/plain", text=text)

    async def read_broken(uri: str, variables: dict[str, str]) -> TextResourceContents:
        raise OSError("device not ready")

    registry.register_resource(ResourceSpec(uri="memo://notes", name="Notes", reader=read_note))
    registry.register_resource(
        ResourceSpec(uri="memo://items/pinned", name="Pinned", reader=read_note)
    )
    registry.register_resource(ResourceSpec(uri="memo://broken", name="Broken", reader=read_broken))
    registry.register_resource(
        ResourceTemplate(uri_template="memo://items/{item}", name="Item", reader=read_item)
    )

    async def greet(arguments: dict[str, str]) -> list[PromptMessage]:
        calls.log.append(("greet", arguments))
        style = arguments.get("style", "plain")
        return [PromptMessage.user(f"Say hello to {arguments['name']} ({style})")]

    registry.register_prompt(
        PromptSpec(
            name="greet",
            description="Greeting prompt",
            generate=greet,
            arguments=(
                PromptArgument(name="name", required=True),
                PromptArgument(name="style"),
            ),
        )
    )
    return registry


@pytest.fixture
def dispatcher(registry: CapabilityRegistry) -> Dispatcher:
    registry.freeze()
    return Dispatcher(registry, server_info=Implementation(name="test-server", version="9.9"))


class MemoryTransport:
    """In-memory transport: tests push inbound messages and inspect ``sent``."""

    def __init__(self) -> None:
        self.sent: list[JsonRpcMessage] = []
        self.listener: TransportListener | None = None
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def start(self, listener: TransportListener) -> None:
        self.listener = listener

    async def send(self, message: JsonRpcMessage) -> None:
        if self.closed:
            raise TransportClosedError("memory")
        self.sent.append(message)

    async def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        if self.listener is not None:
            await self.listener.on_close()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def receive(self, message: JsonRpcMessage) -> None:
        assert self.listener is not None
        await self.listener.on_message(message)

    async def request(
        self, request_id: RequestId, method: str, params: dict[str, Any] | None = None
    ) -> JsonRpcResponse:
        await self.receive(JsonRpcRequest(id=request_id, method=method, params=params or {}))
        return await self.response_for(request_id)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self.receive(JsonRpcNotification(method=method, params=params or {}))

    def responses(self) -> list[JsonRpcResponse]:
        return [m for m in self.sent if isinstance(m, JsonRpcResponse)]

    async def response_for(self, request_id: RequestId, timeout: float = 2.0) -> JsonRpcResponse:
        async def poll() -> JsonRpcResponse:
            while True:
                for response in self.responses():
                    if response.id == request_id:
                        return response
                await asyncio.sleep(0.005)

        return await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def memory_transport() -> MemoryTransport:
    return MemoryTransport()


INIT_PARAMS: dict[str, Any] = {
    "protocolVersion": "2025-06-18",
    "capabilities": {},
    "clientInfo": {"name": "pytest-client", "version": "1.0"},
}


@pytest.fixture
def init_params() -> dict[str, Any]:
    return dict(INIT_PARAMS)
