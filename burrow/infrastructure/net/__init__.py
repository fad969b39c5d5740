"""
Network adapters for tunnels.
"""

from .tcp import PatternForwardPolicy, SocketStream, TcpDialer

__all__ = [
    "PatternForwardPolicy",
    "SocketStream",
    "TcpDialer",
]
