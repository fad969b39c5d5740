"""
Core services: channel dispatch, session and tunnel handling, stream bridging.
"""

from .bridge import ShutdownSignal, StreamBridge, pump
from .dispatcher import ChannelDispatcher
from .session_handler import ActivityKind, SessionHandler, SessionState
from .tunnel_handler import TunnelHandler, TunnelOpener

__all__ = [
    "ShutdownSignal",
    "StreamBridge",
    "pump",
    "ChannelDispatcher",
    "ActivityKind",
    "SessionHandler",
    "SessionState",
    "TunnelHandler",
    "TunnelOpener",
]
