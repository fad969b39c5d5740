"""
asyncssh transport adapters.
"""

from .channel import ChannelStream
from .host_keys import load_host_key
from .server import BurrowSSHServer, SSHAcceptor
from .sessions import SSHSessionAdapter, SSHTunnelAdapter

__all__ = [
    "BurrowSSHServer",
    "ChannelStream",
    "SSHAcceptor",
    "SSHSessionAdapter",
    "SSHTunnelAdapter",
    "load_host_key",
]
