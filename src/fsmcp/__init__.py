"""fsmcp — filesystem and code-analysis tools over the Model Context Protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from fsmcp.config import ServerSettings as ServerSettings
    from fsmcp.server.app import MCPServer as MCPServer

_LAZY_EXPORTS = {
    "MCPServer": "fsmcp.server.app",
    "ServerSettings": "fsmcp.config",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'fsmcp' has no attribute {name!r}")
