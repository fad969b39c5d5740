"""
Domain models for connections, channels, requests and credentials.
"""

from .channels import (
    ChannelKind, ChannelOpen, ConnectionInfo, DirectTcpIpTarget, RejectReason, WindowSize
)
from .credentials import CredentialRecord, SystemAccount
from .requests import (
    ChannelRequest, ExecRequest, PtyRequest, ShellRequest, SubsystemRequest,
    UnsupportedRequest, WindowChangeRequest
)

__all__ = [
    "ChannelKind",
    "ChannelOpen",
    "ConnectionInfo",
    "DirectTcpIpTarget",
    "RejectReason",
    "WindowSize",
    "CredentialRecord",
    "SystemAccount",
    "ChannelRequest",
    "ExecRequest",
    "PtyRequest",
    "ShellRequest",
    "SubsystemRequest",
    "UnsupportedRequest",
    "WindowChangeRequest",
]
