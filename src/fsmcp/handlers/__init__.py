"""Reference handlers: filesystem tools, code analysis, file resources and prompts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fsmcp.handlers._paths import PathResolver
from fsmcp.handlers.analysis import register_analysis_tools
from fsmcp.handlers.filesystem import register_filesystem_tools
from fsmcp.handlers.prompts import register_prompts
from fsmcp.handlers.resources import register_file_resources

if TYPE_CHECKING:
    from fsmcp.config import ServerSettings
    from fsmcp.server.registry import CapabilityRegistry


def register_all(registry: CapabilityRegistry, settings: ServerSettings) -> PathResolver:
    """Populate *registry* with every reference handler, rooted at ``settings.root``."""
    resolver = PathResolver(settings.root, restrict_to_root=settings.restrict_to_root)
    register_filesystem_tools(registry, resolver, settings.search)
    register_analysis_tools(registry, resolver, settings.search)
    register_file_resources(registry, resolver)
    register_prompts(registry, resolver, settings.search)
    return resolver


__all__ = ["PathResolver", "register_all"]
