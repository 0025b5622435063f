"""Dispatcher — routes one request to its handler and shapes the response.

Per request:

1. Look the method up in a fixed table; unknown → *method not found*.
2. Capability-gated methods whose family the server does not declare are
   also *method not found*.
3. ``tools/call`` and ``prompts/get`` look up the named spec; unknown
   names → *invalid params*.
4. Arguments are validated before the handler runs.
5. Tool handler failures, anticipated or not, become ``isError`` results.
6. Exactly one :class:`JsonRpcResponse` comes back, echoing the request id.

The dispatcher holds no session state; lifecycle gating lives in
:class:`~fsmcp.server.session.Session`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from opentelemetry import trace
from pydantic import BaseModel, ValidationError

from fsmcp.protocol.errors import (
    HandlerError,
    InternalError,
    InvalidParamsError,
    MethodNotFoundError,
    NotFoundError,
    ProtocolError,
    ToolError,
)
from fsmcp.protocol.models import (
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    CallToolParams,
    GetPromptParams,
    GetPromptResult,
    InitializeParams,
    InitializeResult,
    JsonRpcResponse,
    ReadResourceParams,
    ReadResourceResult,
    SetLevelParams,
    ToolResult,
)
from fsmcp.server.context import bind_request, unbind_request
from fsmcp.server.validation import validate_prompt_arguments, validate_tool_arguments
from fsmcp.utils.telemetry import (
    ATTR_ERROR_CODE,
    ATTR_PROMPT_NAME,
    ATTR_REQUEST_ID,
    ATTR_RESOURCE_URI,
    ATTR_RPC_METHOD,
    ATTR_SESSION_ID,
    ATTR_TOOL_IS_ERROR,
    ATTR_TOOL_NAME,
    get_tracer,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from fsmcp.protocol.models import (
        Implementation,
        JsonRpcNotification,
        JsonRpcRequest,
        ServerCapabilities,
    )
    from fsmcp.server.context import PeerState, RequestContext
    from fsmcp.server.registry import CapabilityRegistry
    from fsmcp.server.specs import ToolSpec

    MethodHandler = Callable[[dict[str, Any], RequestContext], Awaitable[dict[str, Any]]]

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class Dispatcher:
    """Maps protocol methods onto the registry.

    Usage::

        dispatcher = Dispatcher(registry, server_info=Implementation(name="fsmcp"))
        response = await dispatcher.dispatch(request, context)
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        *,
        server_info: Implementation,
        instructions: str | None = None,
    ) -> None:
        self._registry = registry
        self._server_info = server_info
        self._instructions = instructions
        self._capabilities = registry.capabilities()
        # method -> (capability family or None, handler)
        self._methods: dict[str, tuple[str | None, MethodHandler]] = {
            "initialize": (None, self._initialize),
            "ping": (None, self._ping),
            "tools/list": ("tools", self._list_tools),
            "tools/call": ("tools", self._call_tool),
            "resources/list": ("resources", self._list_resources),
            "resources/templates/list": ("resources", self._list_resource_templates),
            "resources/read": ("resources", self._read_resource),
            "prompts/list": ("prompts", self._list_prompts),
            "prompts/get": ("prompts", self._get_prompt),
            "logging/setLevel": ("logging", self._set_level),
        }

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._capabilities

    @property
    def registry(self) -> CapabilityRegistry:
        return self._registry

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self._methods)

    async def dispatch(self, request: JsonRpcRequest, context: RequestContext) -> JsonRpcResponse:
        """Handle *request* and return its single response.

        *context* is visible to handlers through
        :func:`~fsmcp.server.context.current_request` while this runs.
        """
        token = bind_request(context)
        try:
            return await self._traced_dispatch(request, context)
        finally:
            unbind_request(token)

    async def _traced_dispatch(
        self, request: JsonRpcRequest, context: RequestContext
    ) -> JsonRpcResponse:
        with _tracer.start_as_current_span(f"fsmcp.rpc {request.method}") as span:
            span.set_attribute(ATTR_RPC_METHOD, request.method)
            span.set_attribute(ATTR_REQUEST_ID, str(request.id))
            if context.session_id:
                span.set_attribute(ATTR_SESSION_ID, context.session_id)

            logger.debug("Dispatching %s (id=%r)", request.method, request.id)
            try:
                result = await self._route(request, context)
            except ProtocolError as exc:
                span.set_attribute(ATTR_ERROR_CODE, exc.code)
                logger.debug("%s (id=%r) failed: %s", request.method, request.id, exc.message)
                return JsonRpcResponse.failure(request.id, exc)
            except Exception as exc:
                logger.exception("Internal error while dispatching %s", request.method)
                error = InternalError(f"Internal error: {exc}")
                span.set_attribute(ATTR_ERROR_CODE, error.code)
                return JsonRpcResponse.failure(request.id, error)

            return JsonRpcResponse.success(request.id, result)

    async def notify(self, notification: JsonRpcNotification, peer: PeerState) -> None:
        """Handle a notification the session did not consume. Never answers."""
        if notification.method.startswith("notifications/"):
            logger.debug("Notification %s from %s", notification.method, _client_name(peer))
            return
        logger.warning("Ignoring unknown notification %s", notification.method)

    async def _route(self, request: JsonRpcRequest, context: RequestContext) -> dict[str, Any]:
        entry = self._methods.get(request.method)
        if entry is None:
            raise MethodNotFoundError(request.method)

        family, handler = entry
        if family is not None and not self._capabilities.declares(family):
            raise MethodNotFoundError(request.method)

        return await handler(request.params, context)

    # -- lifecycle ----------------------------------------------------------

    async def _initialize(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        init = _parse(InitializeParams, params, "initialize")
        requested = init.protocol_version
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        if version != requested:
            logger.info("Client asked for protocol %s; offering %s", requested, version)

        context.peer.client_info = init.client_info
        context.peer.client_capabilities = init.capabilities
        context.peer.protocol_version = version

        return InitializeResult(
            protocol_version=version,
            capabilities=self._capabilities,
            server_info=self._server_info,
            instructions=self._instructions,
        ).wire()

    async def _ping(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {}

    async def _set_level(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        level = _parse(SetLevelParams, params, "logging/setLevel").level
        context.peer.log_level = level
        logger.info("Client log level set to %s", level)
        return {}

    # -- tools --------------------------------------------------------------

    async def _list_tools(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        return {"tools": [spec.info().wire() for spec in self._registry.list_tools()]}

    async def _call_tool(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        call = _parse(CallToolParams, params, "tools/call")
        span = trace.get_current_span()
        span.set_attribute(ATTR_TOOL_NAME, call.name)

        spec = self._registry.get_tool(call.name)
        if spec is None:
            raise InvalidParamsError(f"Unknown tool: {call.name}", data={"tool": call.name})

        validate_tool_arguments(spec.name, self._registry.get_validator(spec.name), call.arguments)

        result = await self._invoke_tool(spec, call.arguments)
        span.set_attribute(ATTR_TOOL_IS_ERROR, result.is_error)
        return result.wire()

    async def _invoke_tool(self, spec: ToolSpec, arguments: dict[str, Any]) -> ToolResult:
        try:
            outcome = await spec.handler(arguments)
        except ToolError as exc:
            logger.info("Tool %s reported an error: %s", spec.name, exc)
            return ToolResult.error(str(exc))
        except Exception as exc:
            logger.exception("Tool %s raised an unexpected error", spec.name)
            return ToolResult.error(
                f"Tool '{spec.name}' failed unexpectedly: {type(exc).__name__}: {exc}"
            )

        if isinstance(outcome, ToolResult):
            return outcome
        if isinstance(outcome, str):
            return ToolResult.text(outcome)
        logger.error("Tool %s returned %s", spec.name, type(outcome).__name__)
        return ToolResult.error(
            f"Tool '{spec.name}' returned an unsupported result type: {type(outcome).__name__}"
        )

    # -- resources ----------------------------------------------------------

    async def _list_resources(
        self, params: dict[str, Any], context: RequestContext
    ) -> dict[str, Any]:
        return {"resources": [spec.info().wire() for spec in self._registry.list_resources()]}

    async def _list_resource_templates(
        self, params: dict[str, Any], context: RequestContext
    ) -> dict[str, Any]:
        templates = self._registry.list_resource_templates()
        return {"resourceTemplates": [template.info().wire() for template in templates]}

    async def _read_resource(
        self, params: dict[str, Any], context: RequestContext
    ) -> dict[str, Any]:
        uri = _parse(ReadResourceParams, params, "resources/read").uri
        trace.get_current_span().set_attribute(ATTR_RESOURCE_URI, uri)

        try:
            resolved = self._registry.resolve_resource(uri)
        except NotFoundError as exc:
            raise InvalidParamsError(str(exc), data={"uri": uri}) from exc

        try:
            contents = await resolved.read()
        except ProtocolError:
            raise
        except (ToolError, OSError, ValueError) as exc:
            logger.warning("Cannot read resource %s: %s", uri, exc)
            raise HandlerError(f"Cannot read resource '{uri}': {exc}", data={"uri": uri}) from exc
        except Exception as exc:
            logger.exception("Resource reader for %s raised an unexpected error", uri)
            raise HandlerError(f"Cannot read resource '{uri}': {exc}", data={"uri": uri}) from exc

        if not isinstance(contents, list):
            contents = [contents]
        return ReadResourceResult(contents=contents).wire()

    # -- prompts ------------------------------------------------------------

    async def _list_prompts(
        self, params: dict[str, Any], context: RequestContext
    ) -> dict[str, Any]:
        return {"prompts": [spec.info().wire() for spec in self._registry.list_prompts()]}

    async def _get_prompt(self, params: dict[str, Any], context: RequestContext) -> dict[str, Any]:
        get = _parse(GetPromptParams, params, "prompts/get")
        trace.get_current_span().set_attribute(ATTR_PROMPT_NAME, get.name)

        spec = self._registry.get_prompt(get.name)
        if spec is None:
            raise InvalidParamsError(f"Unknown prompt: {get.name}", data={"prompt": get.name})

        arguments = validate_prompt_arguments(spec, get.arguments)

        try:
            messages = await spec.generate(arguments)
        except ProtocolError:
            raise
        except Exception as exc:
            logger.exception("Prompt %s failed to generate", spec.name)
            raise HandlerError(
                f"Prompt '{spec.name}' failed: {exc}", data={"prompt": spec.name}
            ) from exc

        return GetPromptResult(description=spec.description, messages=messages).wire()


def _parse(model: type[_ModelT], params: dict[str, Any], method: str) -> _ModelT:
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<params>'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidParamsError(f"Invalid params for {method}: {problems}") from exc


def _client_name(peer: PeerState) -> str:
    return peer.client_info.name if peer.client_info else "unknown client"
