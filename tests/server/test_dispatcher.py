"""Tests for Dispatcher routing, validation and error shaping."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from fsmcp.protocol.errors import (
    HANDLER_ERROR,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
)
from fsmcp.protocol.models import (
    LATEST_PROTOCOL_VERSION,
    Implementation,
    JsonRpcNotification,
    JsonRpcRequest,
)
from fsmcp.server.context import PeerState, RequestContext, current_request
from fsmcp.server.dispatcher import Dispatcher
from fsmcp.server.registry import CapabilityRegistry
from fsmcp.server.specs import ToolSpec

if TYPE_CHECKING:
    from fsmcp.protocol.models import JsonRpcResponse


async def _call(
    dispatcher: Dispatcher,
    method: str,
    params: dict[str, Any] | None = None,
    *,
    request_id: int | str = 1,
    peer: PeerState | None = None,
) -> JsonRpcResponse:
    request = JsonRpcRequest(id=request_id, method=method, params=params or {})
    context = RequestContext(request_id=request_id, peer=peer or PeerState())
    return await dispatcher.dispatch(request, context)


class TestLifecycleMethods:
    async def test_initialize(self, dispatcher: Dispatcher, init_params: dict[str, Any]) -> None:
        peer = PeerState()
        response = await _call(dispatcher, "initialize", init_params, peer=peer)
        assert response.result is not None
        assert response.result["protocolVersion"] == "2025-06-18"
        assert response.result["serverInfo"] == {"name": "test-server", "version": "9.9"}
        assert set(response.result["capabilities"]) == {"tools", "resources", "prompts", "logging"}
        assert peer.client_info is not None
        assert peer.client_info.name == "pytest-client"
        assert peer.protocol_version == "2025-06-18"

    async def test_unsupported_version_falls_back(
        self, dispatcher: Dispatcher, init_params: dict[str, Any]
    ) -> None:
        init_params["protocolVersion"] = "1999-01-01"
        response = await _call(dispatcher, "initialize", init_params)
        assert response.result is not None
        assert response.result["protocolVersion"] == LATEST_PROTOCOL_VERSION

    async def test_initialize_requires_client_info(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "initialize", {"protocolVersion": "2025-06-18"})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
        assert "clientInfo" in response.error.message

    async def test_ping(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "ping", request_id="p-1")
        assert response.id == "p-1"
        assert response.result == {}

    async def test_instructions_included(self, registry: CapabilityRegistry) -> None:
        dispatcher = Dispatcher(
            registry, server_info=Implementation(name="s"), instructions="Be careful"
        )
        response = await _call(
            dispatcher,
            "initialize",
            {"protocolVersion": "2025-06-18", "clientInfo": {"name": "c"}},
        )
        assert response.result is not None
        assert response.result["instructions"] == "Be careful"


class TestRouting:
    async def test_unknown_method(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "tools/frobnicate", request_id=42)
        assert response.id == 42
        assert response.error is not None
        assert response.error.code == METHOD_NOT_FOUND

    async def test_undeclared_family_is_method_not_found(self) -> None:
        dispatcher = Dispatcher(CapabilityRegistry(), server_info=Implementation(name="empty"))
        for method in ("tools/list", "resources/read", "prompts/get"):
            response = await _call(dispatcher, method)
            assert response.error is not None
            assert response.error.code == METHOD_NOT_FOUND

    async def test_logging_always_served(self) -> None:
        dispatcher = Dispatcher(CapabilityRegistry(), server_info=Implementation(name="empty"))
        peer = PeerState()
        response = await _call(dispatcher, "logging/setLevel", {"level": "debug"}, peer=peer)
        assert response.result == {}
        assert peer.log_level == "debug"

    async def test_set_level_rejects_unknown_level(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "logging/setLevel", {"level": "loud"})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS

    async def test_unexpected_failure_is_internal_error(
        self, dispatcher: Dispatcher, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def explode() -> None:
            raise RuntimeError("registry corrupted")

        monkeypatch.setattr(dispatcher.registry, "list_tools", explode)
        response = await _call(dispatcher, "tools/list")
        assert response.error is not None
        assert response.error.code == INTERNAL_ERROR
        assert "registry corrupted" in response.error.message

    async def test_notify_never_answers(self, dispatcher: Dispatcher) -> None:
        result = await dispatcher.notify(
            JsonRpcNotification(method="notifications/roots/list_changed"), PeerState()
        )
        assert result is None


class TestTools:
    async def test_list_in_registration_order(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "tools/list")
        assert response.result is not None
        tools = response.result["tools"]
        assert [tool["name"] for tool in tools] == ["echo", "fail", "boom", "wait"]
        assert tools[0]["inputSchema"]["required"] == ["text"]

    async def test_call_success(self, dispatcher: Dispatcher, calls: Any) -> None:
        response = await _call(
            dispatcher, "tools/call", {"name": "echo", "arguments": {"text": "hi"}}
        )
        assert response.result == {"content": [{"type": "text", "text": "hi"}], "isError": False}
        assert calls.log == [("echo", {"text": "hi"})]

    async def test_unknown_tool_never_invokes_handler(
        self, dispatcher: Dispatcher, calls: Any
    ) -> None:
        response = await _call(dispatcher, "tools/call", {"name": "nope", "arguments": {}})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
        assert response.error.message == "Unknown tool: nope"
        assert calls.log == []

    async def test_missing_required_argument(self, dispatcher: Dispatcher, calls: Any) -> None:
        response = await _call(dispatcher, "tools/call", {"name": "echo", "arguments": {}})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
        assert calls.log == []

    async def test_wrong_argument_type(self, dispatcher: Dispatcher, calls: Any) -> None:
        response = await _call(
            dispatcher, "tools/call", {"name": "echo", "arguments": {"text": 5}}
        )
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
        assert calls.log == []

    async def test_missing_name(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "tools/call", {"arguments": {}})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS

    async def test_tool_error_becomes_is_error(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "tools/call", {"name": "fail"})
        assert response.error is None
        assert response.result is not None
        assert response.result["isError"] is True
        assert response.result["content"][0]["text"] == "ERROR: disk on fire"

    async def test_unexpected_exception_becomes_is_error(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "tools/call", {"name": "boom"})
        assert response.result is not None
        assert response.result["isError"] is True
        text = response.result["content"][0]["text"]
        assert "boom" in text
        assert "RuntimeError: unexpected" in text



class TestRequestContext:
    async def test_handler_sees_its_context(self) -> None:
        seen: list[RequestContext | None] = []

        async def whoami(arguments: dict[str, Any]) -> str:
            seen.append(current_request())
            return "ok"

        registry = CapabilityRegistry()
        registry.register_tool(
            ToolSpec(name="whoami", description="", input_schema={"type": "object"}, handler=whoami)
        )
        dispatcher = Dispatcher(registry, server_info=Implementation(name="ctx"))
        request = JsonRpcRequest(id="r-1", method="tools/call", params={"name": "whoami"})
        context = RequestContext(request_id="r-1", peer=PeerState(), session_id="s-9")

        response = await dispatcher.dispatch(request, context)

        assert response.result is not None
        assert seen == [context]
        assert current_request() is None

class TestResources:
    async def test_list(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "resources/list")
        assert response.result is not None
        uris = [r["uri"] for r in response.result["resources"]]
        assert uris == ["memo://notes", "memo://items/pinned", "memo://broken"]

    async def test_list_templates(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "resources/templates/list")
        assert response.result == {
            "resourceTemplates": [{"uriTemplate": "memo://items/{item}", "name": "Item"}]
        }

    async def test_read_static(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "resources/read", {"uri": "memo://notes"})
        assert response.result == {
            "contents": [{"uri": "memo://notes", "mimeType": "text/plain", "text": "static note"}]
        }

    async def test_read_template(self, dispatcher: Dispatcher, calls: Any) -> None:
        response = await _call(dispatcher, "resources/read", {"uri": "memo://items/42"})
        assert response.result is not None
        assert response.result["contents"][0]["text"] == "item 42"
        assert calls.log == [("read_item", {"item": "42"})]

    async def test_static_beats_template(self, dispatcher: Dispatcher, calls: Any) -> None:
        response = await _call(dispatcher, "resources/read", {"uri": "memo://items/pinned"})
        assert response.result is not None
        assert response.result["contents"][0]["text"] == "static note"
        assert calls.names() == ["read_note"]

    async def test_unknown_uri(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "resources/read", {"uri": "other://x"})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
        assert response.error.data == {"uri": "other://x"}

    async def test_reader_failure(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "resources/read", {"uri": "memo://broken"})
        assert response.error is not None
        assert response.error.code == HANDLER_ERROR
        assert "device not ready" in response.error.message


class TestPrompts:
    async def test_list(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "prompts/list")
        assert response.result is not None
        prompt = response.result["prompts"][0]
        assert prompt["name"] == "greet"
        assert prompt["arguments"][0] == {"name": "name", "description": "", "required": True}

    async def test_get(self, dispatcher: Dispatcher) -> None:
        response = await _call(
            dispatcher, "prompts/get", {"name": "greet", "arguments": {"name": "Ada"}}
        )
        assert response.result == {
            "description": "Greeting prompt",
            "messages": [
                {"role": "user", "content": {"type": "text", "text": "Say hello to Ada (plain)"}}
            ],
        }

    async def test_missing_required_argument(self, dispatcher: Dispatcher, calls: Any) -> None:
        response = await _call(dispatcher, "prompts/get", {"name": "greet", "arguments": {}})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
        assert calls.log == []

    async def test_unknown_prompt(self, dispatcher: Dispatcher) -> None:
        response = await _call(dispatcher, "prompts/get", {"name": "nope"})
        assert response.error is not None
        assert response.error.code == INVALID_PARAMS
