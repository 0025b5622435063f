"""CapabilityRegistry — the catalog of tools, resources and prompts.

Populated once at startup, then frozen when the first session is built.
After that it is read-only, so list and lookup calls need no locking.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fsmcp.protocol.errors import DuplicateNameError, NotFoundError, RegistryFrozenError
from fsmcp.protocol.models import (
    PromptsCapability,
    ResourcesCapability,
    ServerCapabilities,
    ToolsCapability,
)
from fsmcp.server.specs import ResolvedResource, ResourceSpec, ResourceTemplate
from fsmcp.server.validation import compile_schema

if TYPE_CHECKING:
    from jsonschema import Draft202012Validator

    from fsmcp.server.specs import PromptSpec, ToolSpec

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Holds registered specs in registration order.

    Usage::

        registry = CapabilityRegistry()
        registry.register_tool(ToolSpec(name="read_file", ...))
        registry.register_resource(ResourceTemplate("file://{path}", ...))
        registry.freeze()

        registry.list_tools()                    # registration order
        registry.resolve_resource("file:///x")   # static first, then templates
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._validators: dict[str, Draft202012Validator] = {}
        self._resources: dict[str, ResourceSpec] = {}
        self._templates: dict[str, ResourceTemplate] = {}
        self._prompts: dict[str, PromptSpec] = {}
        self._frozen = False

    # -- registration -------------------------------------------------------

    def register_tool(self, spec: ToolSpec) -> None:
        """Add a tool; its input schema is checked here, at startup.

        Raises:
            DuplicateNameError: A tool with the same name exists.
            jsonschema.exceptions.SchemaError: The input schema is invalid.
        """
        self._ensure_open("tool", spec.name)
        if spec.name in self._tools:
            raise DuplicateNameError("tool", spec.name)
        self._validators[spec.name] = compile_schema(spec.input_schema)
        self._tools[spec.name] = spec
        logger.debug("Registered tool %s", spec.name)

    def register_resource(self, spec: ResourceSpec | ResourceTemplate) -> None:
        """Add a static resource or a resource template."""
        if isinstance(spec, ResourceTemplate):
            self._ensure_open("resource template", spec.uri_template)
            if spec.uri_template in self._templates:
                raise DuplicateNameError("resource template", spec.uri_template)
            self._templates[spec.uri_template] = spec
            logger.debug("Registered resource template %s", spec.uri_template)
            return

        self._ensure_open("resource", spec.uri)
        if spec.uri in self._resources:
            raise DuplicateNameError("resource", spec.uri)
        self._resources[spec.uri] = spec
        logger.debug("Registered resource %s", spec.uri)

    def register_prompt(self, spec: PromptSpec) -> None:
        self._ensure_open("prompt", spec.name)
        if spec.name in self._prompts:
            raise DuplicateNameError("prompt", spec.name)
        self._prompts[spec.name] = spec
        logger.debug("Registered prompt %s", spec.name)

    def freeze(self) -> None:
        """Make the registry read-only. Idempotent."""
        if not self._frozen:
            logger.info(
                "Registry frozen: %d tool(s), %d resource(s), %d template(s), %d prompt(s)",
                len(self._tools),
                len(self._resources),
                len(self._templates),
                len(self._prompts),
            )
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- queries ------------------------------------------------------------

    def list_tools(self) -> tuple[ToolSpec, ...]:
        return tuple(self._tools.values())

    def list_resources(self) -> tuple[ResourceSpec, ...]:
        return tuple(self._resources.values())

    def list_resource_templates(self) -> tuple[ResourceTemplate, ...]:
        return tuple(self._templates.values())

    def list_prompts(self) -> tuple[PromptSpec, ...]:
        return tuple(self._prompts.values())

    def get_tool(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def get_validator(self, name: str) -> Draft202012Validator:
        return self._validators[name]

    def get_prompt(self, name: str) -> PromptSpec | None:
        return self._prompts.get(name)

    def resolve_resource(self, uri: str) -> ResolvedResource:
        """Find the reader responsible for *uri*.

        Resolution order:
        1. Static resources: exact URI match.
        2. Templates: first registered whose pattern matches.

        Raises:
            NotFoundError: Nothing matches.
        """
        static = self._resources.get(uri)
        if static is not None:
            return ResolvedResource(uri=uri, reader=static.reader, variables={}, source=static)

        for template in self._templates.values():
            variables = template.match(uri)
            if variables is not None:
                return ResolvedResource(
                    uri=uri, reader=template.reader, variables=variables, source=template
                )

        raise NotFoundError(uri)

    def capabilities(self) -> ServerCapabilities:
        """Advertise only the families that have something registered."""
        return ServerCapabilities(
            tools=ToolsCapability() if self._tools else None,
            resources=ResourcesCapability() if self._resources or self._templates else None,
            prompts=PromptsCapability() if self._prompts else None,
            logging={},
        )

    def _ensure_open(self, kind: str, name: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(kind, name)
