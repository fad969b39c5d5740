"""
Core module containing the channel dispatch engine, domain models and service interfaces.

This layer is independent of asyncssh and of the operating system; the
infrastructure layer adapts both to the interfaces defined here.
"""

from .domain.channels import ChannelKind, ChannelOpen, ConnectionInfo, DirectTcpIpTarget, WindowSize
from .exceptions import BurrowError, ChannelOpenRejected, CredentialStoreError
from .services.dispatcher import ChannelDispatcher
from .services.session_handler import SessionHandler
from .services.tunnel_handler import TunnelHandler, TunnelOpener

__all__ = [
    "ChannelKind",
    "ChannelOpen",
    "ConnectionInfo",
    "DirectTcpIpTarget",
    "WindowSize",
    "BurrowError",
    "ChannelOpenRejected",
    "CredentialStoreError",
    "ChannelDispatcher",
    "SessionHandler",
    "TunnelHandler",
    "TunnelOpener",
]
