"""
Credential records stored in the local password file.
"""

from dataclasses import dataclass
from typing import List


FIELD_DELIMITER = ":"
COMMENT_PREFIX = "#"
FIELDS_PER_RECORD = 3
HEADER_FIELDS = ("#username", "salt", "authCookie")


@dataclass
class CredentialRecord:
    """A single ``username:salt:passwordHash`` row."""
    username: str
    salt: str
    password_hash: str

    def to_fields(self) -> List[str]:
        return [self.username, self.salt, self.password_hash]

    def to_line(self) -> str:
        return FIELD_DELIMITER.join(self.to_fields())


@dataclass(frozen=True)
class SystemAccount:
    """A resolved operating-system account."""
    name: str
    uid: int
    gid: int
    home: str
    shell: str
