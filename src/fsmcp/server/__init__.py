"""Server core: capability registry, dispatcher and session state machine.

:class:`~fsmcp.server.app.MCPServer` lives in :mod:`fsmcp.server.app`; it
pulls in the reference handlers, which themselves import from this package.
"""

from fsmcp.server.context import PeerState, RequestContext, current_request
from fsmcp.server.dispatcher import Dispatcher
from fsmcp.server.registry import CapabilityRegistry
from fsmcp.server.session import Session, SessionState
from fsmcp.server.specs import PromptSpec, ResourceSpec, ResourceTemplate, ToolSpec

__all__ = [
    "CapabilityRegistry",
    "Dispatcher",
    "PeerState",
    "PromptSpec",
    "RequestContext",
    "current_request",
    "ResourceSpec",
    "ResourceTemplate",
    "Session",
    "SessionState",
    "ToolSpec",
]
