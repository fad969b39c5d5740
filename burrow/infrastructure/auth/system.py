"""
Operating-system backed authentication capabilities.
"""

import os
import pwd
from typing import Optional

from ...core.domain.credentials import SystemAccount
from ...core.interfaces.auth import AuthContext, IAccountResolver, IResourceReader


class FileResourceReader(IResourceReader):
    """Reads files straight into a mutable buffer."""

    def read(self, name: str) -> bytearray:
        with open(name, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            buffer = bytearray(size)
            count = f.readinto(buffer)
            if count < size:
                del buffer[count:]
            # The file may have grown since fstat
            while True:
                chunk = f.read(4096)
                if not chunk:
                    break
                buffer.extend(chunk)
        return buffer


class PasswdAccountResolver(IAccountResolver):
    """Resolves accounts through the passwd database."""

    def lookup(self, username: str) -> Optional[SystemAccount]:
        try:
            entry = pwd.getpwnam(username)
        except KeyError:
            return None
        return SystemAccount(
            name=entry.pw_name,
            uid=entry.pw_uid,
            gid=entry.pw_gid,
            home=entry.pw_dir,
            shell=entry.pw_shell,
        )


def default_auth_context() -> AuthContext:
    """The production capabilities: real files and the real account database."""
    return AuthContext(
        resource_reader=FileResourceReader(),
        account_resolver=PasswdAccountResolver(),
    )
