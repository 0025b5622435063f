"""fsmcp CLI entrypoint."""

from __future__ import annotations

import click

from fsmcp import __version__


@click.group()
@click.version_option(version=__version__, prog_name="fsmcp")
def main() -> None:
    """fsmcp: filesystem and code-analysis tools over MCP."""


# Register subcommands
from fsmcp.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
