"""
POSIX terminal and process adapters: pseudo-terminals, child processes and
descriptor-backed byte streams.
"""

from .fdstream import FdStream
from .process import ChildProcess, ProcessLauncher
from .pty import PseudoTerminal, PtyFactory, get_window_size, set_window_size

__all__ = [
    "ChildProcess",
    "FdStream",
    "ProcessLauncher",
    "PseudoTerminal",
    "PtyFactory",
    "get_window_size",
    "set_window_size",
]
