"""
Service interfaces for the core layer.
"""

from .auth import AuthContext, IAccountResolver, IPasswordVerifier, IResourceReader
from .lifecycle import IComponent, IHealthCheckable, IStartable, IStoppable
from .session import (
    IChildProcess, IDialer, IFileTransferService, IForwardPolicy, IProcessLauncher,
    ITerminal, ITerminalFactory
)
from .streams import IByteStream

__all__ = [
    "AuthContext",
    "IAccountResolver",
    "IPasswordVerifier",
    "IResourceReader",
    "IComponent",
    "IHealthCheckable",
    "IStartable",
    "IStoppable",
    "IChildProcess",
    "IDialer",
    "IFileTransferService",
    "IForwardPolicy",
    "IProcessLauncher",
    "ITerminal",
    "ITerminalFactory",
    "IByteStream",
]
