"""
File-transfer subsystem services.
"""

from .service import SftpSubprocessService, find_sftp_server

__all__ = [
    "SftpSubprocessService",
    "find_sftp_server",
]
