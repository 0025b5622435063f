"""Transports: the channels a session can be bound to."""

from fsmcp.transport.base import Transport, TransportListener
from fsmcp.transport.http import HttpSessionTransport, create_http_app
from fsmcp.transport.stdio import StdioTransport

__all__ = [
    "HttpSessionTransport",
    "StdioTransport",
    "Transport",
    "TransportListener",
    "create_http_app",
]
