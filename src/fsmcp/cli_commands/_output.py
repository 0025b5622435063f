"""Shared CLI output formatters."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

from fsmcp.protocol.models import EmbeddedResource, ImageContent, TextContent

if TYPE_CHECKING:
    from fsmcp.protocol.models import ToolResult
    from fsmcp.server.specs import PromptSpec, ResourceSpec, ResourceTemplate, ToolSpec

console = Console()
# Diagnostics for ``serve`` must stay off stdout.
err_console = Console(stderr=True)


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def print_tools_table(tools: tuple[ToolSpec, ...]) -> None:
    """Pretty-print registered tools as a table."""
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Arguments")
    table.add_column("Description")

    for spec in tools:
        properties = spec.input_schema.get("properties", {})
        required = set(spec.input_schema.get("required", []))
        arguments = ", ".join(f"{name}*" if name in required else name for name in properties)
        table.add_row(spec.name, arguments or "-", _truncate(spec.description))

    console.print(table)


def print_resources_table(
    resources: tuple[ResourceSpec, ...], templates: tuple[ResourceTemplate, ...]
) -> None:
    """Pretty-print static resources and templates as one table."""
    table = Table(title="Resources")
    table.add_column("URI", style="cyan")
    table.add_column("Name")
    table.add_column("MIME")
    table.add_column("Kind")

    for spec in resources:
        table.add_row(spec.uri, spec.name, spec.mime_type or "-", "static")
    for template in templates:
        table.add_row(template.uri_template, template.name, template.mime_type or "-", "template")

    console.print(table)


def print_prompts_table(prompts: tuple[PromptSpec, ...]) -> None:
    table = Table(title="Prompts")
    table.add_column("Name", style="cyan")
    table.add_column("Arguments")
    table.add_column("Description")

    for spec in prompts:
        arguments = ", ".join(
            f"{arg.name}*" if arg.required else arg.name for arg in spec.arguments
        )
        table.add_row(spec.name, arguments or "-", _truncate(spec.description))

    console.print(table)


def print_tool_result(result: ToolResult) -> None:
    """Print each content block; text verbatim, other blocks as a short tag."""
    for block in result.content:
        if isinstance(block, TextContent):
            console.print(block.text, markup=False, highlight=False)
        elif isinstance(block, ImageContent):
            console.print(f"[dim]<image {block.mime_type}, {len(block.data)} base64 chars>[/dim]")
        elif isinstance(block, EmbeddedResource):
            console.print(f"[dim]<resource {block.resource.uri}>[/dim]")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
