"""``fsmcp serve`` — run the MCP server over stdio or HTTP."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from fsmcp.cli_commands._output import err_console
from fsmcp.cli_commands._settings import resolve_settings

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Settings YAML file.",
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "http"]),
    default=None,
    help="Channel to serve on. Default stdio.",
)
@click.option("--host", default=None, help="HTTP bind address.")
@click.option("--port", type=int, default=None, help="HTTP port.")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory relative paths resolve against.",
)
@click.option("--timeout", type=float, default=None, help="Per-request timeout in seconds.")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level (logs go to stderr).",
)
@click.option("--telemetry", is_flag=True, default=None, help="Enable OpenTelemetry tracing.")
def serve(
    config: Path | None,
    transport: str | None,
    host: str | None,
    port: int | None,
    root: Path | None,
    timeout: float | None,
    log_level: str | None,
    telemetry: bool | None,
) -> None:
    """Run the MCP server until the client disconnects or Ctrl-C."""
    from fsmcp.server.app import MCPServer
    from fsmcp.utils.logconfig import configure_logging
    from fsmcp.utils.telemetry import configure_telemetry

    settings = resolve_settings(
        config,
        root=root,
        request_timeout=timeout,
        **{
            "transport.type": transport,
            "transport.host": host,
            "transport.port": port,
            "logging.level": log_level,
            "telemetry.enabled": telemetry or None,
        },
    )

    configure_logging(settings.logging.level, rich=settings.logging.rich)

    if settings.telemetry.enabled:
        try:
            configure_telemetry(
                service_name=settings.name,
                export_to_console=settings.telemetry.export_to_console,
                otlp_endpoint=settings.telemetry.otlp_endpoint,
            )
        except ImportError as exc:
            err_console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(1)

    server = MCPServer(settings)
    runner = server.serve_http if settings.transport.type == "http" else server.serve_stdio

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted.[/yellow]")
