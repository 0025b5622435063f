"""Tests for CapabilityRegistry and URI templates."""

from __future__ import annotations

from typing import Any

import pytest
from jsonschema.exceptions import SchemaError

from fsmcp.protocol.errors import DuplicateNameError, NotFoundError, RegistryFrozenError
from fsmcp.protocol.models import TextResourceContents
from fsmcp.server.registry import CapabilityRegistry
from fsmcp.server.specs import (
    PromptSpec,
    ResourceSpec,
    ResourceTemplate,
    ToolSpec,
    compile_uri_template,
)


async def _noop_tool(arguments: dict[str, Any]) -> str:
    return "ok"


async def _reader(uri: str, variables: dict[str, str]) -> TextResourceContents:
    return TextResourceContents(uri=uri, text=str(variables))


async def _prompt(arguments: dict[str, str]) -> list[Any]:
    return []


def _template() -> ResourceTemplate:
    return ResourceTemplate(uri_template="a://{p}", name="p", reader=_reader)


def _tool(name: str, schema: dict[str, Any] | None = None) -> ToolSpec:
    return ToolSpec(
        name=name, description="", input_schema=schema or {"type": "object"}, handler=_noop_tool
    )


class TestRegistration:
    def test_duplicate_tool_rejected(self) -> None:
        registry = CapabilityRegistry()
        registry.register_tool(_tool("echo"))
        with pytest.raises(DuplicateNameError, match="Duplicate tool: echo"):
            registry.register_tool(_tool("echo"))

    def test_duplicate_resource_and_template_rejected(self) -> None:
        registry = CapabilityRegistry()
        registry.register_resource(ResourceSpec(uri="a://x", name="x", reader=_reader))
        registry.register_resource(_template())
        with pytest.raises(DuplicateNameError):
            registry.register_resource(ResourceSpec(uri="a://x", name="again", reader=_reader))
        with pytest.raises(DuplicateNameError):
            registry.register_resource(
                ResourceTemplate(uri_template="a://{p}", name="again", reader=_reader)
            )

    def test_duplicate_prompt_rejected(self) -> None:
        registry = CapabilityRegistry()
        registry.register_prompt(PromptSpec(name="p", description="", generate=_prompt))
        with pytest.raises(DuplicateNameError):
            registry.register_prompt(PromptSpec(name="p", description="", generate=_prompt))

    def test_invalid_schema_rejected_at_registration(self) -> None:
        registry = CapabilityRegistry()
        with pytest.raises(SchemaError):
            registry.register_tool(_tool("bad", {"type": "not-a-type"}))
        assert registry.get_tool("bad") is None

    def test_frozen_registry_refuses_registration(self) -> None:
        registry = CapabilityRegistry()
        registry.freeze()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register_tool(_tool("late"))

    def test_listing_keeps_registration_order(self) -> None:
        registry = CapabilityRegistry()
        for name in ("zeta", "alpha", "mid"):
            registry.register_tool(_tool(name))
        assert [spec.name for spec in registry.list_tools()] == ["zeta", "alpha", "mid"]


class TestCapabilities:
    def test_empty_registry_declares_only_logging(self) -> None:
        caps = CapabilityRegistry().capabilities()
        assert caps.wire() == {"logging": {}}

    def test_declares_registered_families(self) -> None:
        registry = CapabilityRegistry()
        registry.register_tool(_tool("t"))
        registry.register_resource(_template())
        caps = registry.capabilities()
        assert caps.declares("tools")
        assert caps.declares("resources")
        assert not caps.declares("prompts")


class TestResolveResource:
    @pytest.fixture
    def registry(self) -> CapabilityRegistry:
        registry = CapabilityRegistry()
        registry.register_resource(_template())
        registry.register_resource(ResourceSpec(uri="a://fixed", name="fixed", reader=_reader))
        return registry

    def test_static_wins_over_template(self, registry: CapabilityRegistry) -> None:
        resolved = registry.resolve_resource("a://fixed")
        assert isinstance(resolved.source, ResourceSpec)
        assert resolved.variables == {}

    def test_template_binds_variables(self, registry: CapabilityRegistry) -> None:
        resolved = registry.resolve_resource("a://some/deep/path")
        assert isinstance(resolved.source, ResourceTemplate)
        assert resolved.variables == {"p": "some/deep/path"}

    def test_unmatched_uri(self, registry: CapabilityRegistry) -> None:
        with pytest.raises(NotFoundError, match="b://x"):
            registry.resolve_resource("b://x")

    async def test_read_passes_variables(self, registry: CapabilityRegistry) -> None:
        contents = await registry.resolve_resource("a://x").read()
        assert isinstance(contents, TextResourceContents)
        assert contents.text == "{'p': 'x'}"


class TestUriTemplate:
    def test_multiple_variables(self) -> None:
        template = ResourceTemplate(
            uri_template="repo://{owner}/{name}/readme", name="r", reader=_reader
        )
        assert template.variables == ("owner", "name")
        assert template.match("repo://octo/cat/readme") == {"owner": "octo", "name": "cat"}
        assert template.match("repo://octo/cat/license") is None

    def test_literal_parts_are_escaped(self) -> None:
        pattern, _ = compile_uri_template("x://a.b/{v}")
        assert pattern.fullmatch("x://a.b/1")
        assert not pattern.fullmatch("x://aXb/1")

    def test_empty_variable_does_not_match(self) -> None:
        template = ResourceTemplate(uri_template="file://{path}", name="f", reader=_reader)
        assert template.match("file://") is None

    def test_repeated_variable_rejected(self) -> None:
        with pytest.raises(ValueError, match="repeats"):
            compile_uri_template("x://{a}/{a}")
