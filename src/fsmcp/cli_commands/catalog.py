"""``fsmcp catalog`` — show what the server would advertise."""

from __future__ import annotations

from pathlib import Path

import click

from fsmcp.cli_commands._output import (
    print_json,
    print_prompts_table,
    print_resources_table,
    print_tools_table,
)
from fsmcp.cli_commands._settings import resolve_settings

_root_option = click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory to serve. Default: current directory.",
)
_json_option = click.option("--json", "as_json", is_flag=True, help="Output as JSON.")


def _build_server(root: Path | None):  # noqa: ANN202
    from fsmcp.server.app import MCPServer
    from fsmcp.utils.logconfig import configure_logging

    configure_logging("WARNING")
    return MCPServer(resolve_settings(None, root=root))


@click.group()
def catalog() -> None:
    """List registered tools, resources and prompts."""


@catalog.command("tools")
@_root_option
@_json_option
def tools_cmd(root: Path | None, as_json: bool) -> None:
    """List tools with their argument names (* = required)."""
    specs = _build_server(root).registry.list_tools()
    if as_json:
        print_json([spec.info().wire() for spec in specs])
        return
    print_tools_table(specs)


@catalog.command("resources")
@_root_option
@_json_option
def resources_cmd(root: Path | None, as_json: bool) -> None:
    """List static resources and resource templates."""
    registry = _build_server(root).registry
    resources = registry.list_resources()
    templates = registry.list_resource_templates()
    if as_json:
        print_json(
            {
                "resources": [spec.info().wire() for spec in resources],
                "resourceTemplates": [template.info().wire() for template in templates],
            }
        )
        return
    print_resources_table(resources, templates)


@catalog.command("prompts")
@_root_option
@_json_option
def prompts_cmd(root: Path | None, as_json: bool) -> None:
    """List prompts with their argument names (* = required)."""
    specs = _build_server(root).registry.list_prompts()
    if as_json:
        print_json([spec.info().wire() for spec in specs])
        return
    print_prompts_table(specs)
