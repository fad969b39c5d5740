"""
Burrow - a remote-access SSH server.

Burrow authenticates clients against a local password store (or the host's
shadow database) and serves interactive shells, one-shot commands, SFTP and
direct TCP tunnels over asyncssh.
"""

__version__ = "0.1.0"

# Public API exports
from .core.interfaces.lifecycle import IComponent, IHealthCheckable, IStartable, IStoppable
from .core.services.dispatcher import ChannelDispatcher
from .core.services.session_handler import SessionHandler
from .core.services.tunnel_handler import TunnelHandler, TunnelOpener

__all__ = [
    "IComponent",
    "IHealthCheckable",
    "IStartable",
    "IStoppable",
    "ChannelDispatcher",
    "SessionHandler",
    "TunnelHandler",
    "TunnelOpener",
]
