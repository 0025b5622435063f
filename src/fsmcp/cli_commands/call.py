"""``fsmcp call`` — run one tool through the dispatcher and print the result."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from fsmcp.cli_commands._output import console, err_console, print_tool_result
from fsmcp.cli_commands._settings import resolve_settings

if TYPE_CHECKING:
    from fsmcp.protocol.models import JsonRpcResponse
    from fsmcp.server.app import MCPServer


@click.command()
@click.argument("tool")
@click.option("--args", "args_json", default="{}", help="Tool arguments as a JSON object.")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory relative paths resolve against.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON.")
def call(tool: str, args_json: str, root: Path | None, as_json: bool) -> None:
    """Invoke TOOL once, with the same validation a client request gets.

    Exits 1 when the tool reports an error, 2 on a protocol error.
    """
    from fsmcp.protocol.models import ToolResult
    from fsmcp.server.app import MCPServer
    from fsmcp.utils.logconfig import configure_logging

    try:
        arguments = json.loads(args_json)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON ({exc.msg})", param_hint="--args") from exc
    if not isinstance(arguments, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--args")

    configure_logging("WARNING")
    server = MCPServer(resolve_settings(None, root=root))
    response = asyncio.run(_invoke(server, tool, arguments))

    if response.error is not None:
        err_console.print(f"[red]Error {response.error.code}:[/red] {response.error.message}")
        sys.exit(2)

    assert response.result is not None
    result = ToolResult.model_validate(response.result)
    if as_json:
        console.print_json(json.dumps(response.result))
    else:
        print_tool_result(result)
    if result.is_error:
        sys.exit(1)


async def _invoke(server: MCPServer, tool: str, arguments: dict[str, Any]) -> JsonRpcResponse:
    from fsmcp.protocol.models import JsonRpcRequest
    from fsmcp.server.context import PeerState, RequestContext

    request = JsonRpcRequest(
        id=1, method="tools/call", params={"name": tool, "arguments": arguments}
    )
    return await server.dispatcher.dispatch(request, RequestContext(request_id=1, peer=PeerState()))
