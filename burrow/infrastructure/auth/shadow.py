"""
Verification against the host's shadow password database.

Supported hash schemes are sha512-crypt, sha256-crypt, md5-crypt and bcrypt.
yescrypt (``$y$``) and other schemes are not understood; accounts using them
never authenticate through this backend.
"""

import secrets
import sys
from typing import Optional

import bcrypt
from loguru import logger
from passlib.context import CryptContext

from ...core.exceptions import ConfigurationError, CredentialStoreError
from ...core.interfaces.auth import AuthContext, IPasswordVerifier

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
LOCKED_PREFIXES = ("!", "*")

# glibc's implicit sha512-crypt cost when no rounds= parameter is stored
SHA512_DEFAULT_ROUNDS = 5000

# Hash schemes passlib verifies for us; bcrypt hashes go to the bcrypt package.
crypt_context = CryptContext(
    schemes=["sha512_crypt", "sha256_crypt", "md5_crypt"],
    sha512_crypt__default_rounds=SHA512_DEFAULT_ROUNDS,
)


def default_shadow_path(platform: Optional[str] = None) -> Optional[str]:
    """The shadow database location for ``platform``, or None if unsupported."""
    platform = platform or sys.platform
    if platform.startswith("linux"):
        return "/etc/shadow"
    if platform.startswith("freebsd"):
        return "/etc/master.passwd"
    return None


def hash_scheme(hashed: str) -> str:
    """The ``$id$`` prefix of a crypt(3) hash, or the raw field when it has none."""
    if hashed.startswith("$"):
        return "$" + hashed.split("$")[1] + "$"
    return hashed[:1]


class ShadowPasswordVerifier(IPasswordVerifier):
    """
    Verifies passwords against ``/etc/shadow`` style files.

    Password expiry fields are not inspected. A missing entry, a locked
    account or an unsupported hash format are all checked against a dummy
    sha512-crypt hash, the usual scheme of these files, and reported as the
    same plain failure.

    Args:
        context: Capabilities used to read the shadow file
        shadow_path: Override for the platform default location
    """

    def __init__(self, context: AuthContext, shadow_path: Optional[str] = None) -> None:
        path = shadow_path or default_shadow_path()
        if path is None:
            raise ConfigurationError(f"no shadow password database on platform {sys.platform}")
        self._context = context
        self._path = path
        self._dummy_hash = crypt_context.hash(secrets.token_hex(16))

    @property
    def path(self) -> str:
        return self._path

    @property
    def dummy_hash(self) -> str:
        return self._dummy_hash

    def verify(self, username: str, password: str) -> bool:
        """
        Raises:
            CredentialStoreError: If the shadow file cannot be read
        """
        buffer: Optional[bytearray] = None
        try:
            try:
                buffer = self._context.resource_reader.read(self._path)
            except OSError as e:
                raise CredentialStoreError(f"cannot read {self._path}: {e.strerror or e}")

            hashed = self._find_hash(buffer, username)
        finally:
            if buffer is not None:
                for i in range(len(buffer)):
                    buffer[i] = 0

        if hashed is None:
            self._dummy_check(password)
            return False

        return self._check(username, hashed, password)

    def _find_hash(self, buffer: bytearray, username: str) -> Optional[str]:
        text = bytes(buffer).decode("utf-8", "replace")
        for line in text.splitlines():
            fields = line.split(":")
            if len(fields) < 2 or fields[0] != username:
                continue
            return fields[1]
        return None

    def _check(self, username: str, hashed: str, password: str) -> bool:
        if hashed.startswith(BCRYPT_PREFIXES):
            try:
                return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("ascii"))
            except (ValueError, UnicodeEncodeError):
                return False

        if not crypt_context.identify(hashed):
            if not hashed or hashed.startswith(LOCKED_PREFIXES):
                logger.debug(f"Shadow entry for {username} is locked or has no password")
            else:
                logger.debug(f"Unsupported hash scheme {hash_scheme(hashed)} for {username}")
            self._dummy_check(password)
            return False

        try:
            return crypt_context.verify(password, hashed)
        except ValueError:
            return False

    def _dummy_check(self, password: str) -> None:
        try:
            crypt_context.verify(password, self._dummy_hash)
        except ValueError as e:
            logger.debug(f"Dummy shadow check rejected the password: {e}")
