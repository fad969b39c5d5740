"""
Local password store.

A flat text file of ``username:salt:passwordHash`` rows behind a ``#`` header.
The file is the only source of truth: every verification re-reads it, and
every update rewrites it completely through a temporary file that replaces
the store in a single rename.

Lookups follow an anti-enumeration policy. An unknown username is swapped for
a dummy record hashed at the configured cost when the store is built, so a
wrong password for a real user and any password for a missing user cost
exactly one bcrypt invocation of the same work factor and take the same path.
"""

import csv
import fcntl
import hmac
import io
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

import bcrypt
from loguru import logger

from ...core.domain.credentials import (
    COMMENT_PREFIX, FIELD_DELIMITER, FIELDS_PER_RECORD, HEADER_FIELDS, CredentialRecord
)
from ...core.exceptions import CredentialStoreError
from ...core.interfaces.auth import AuthContext, IPasswordVerifier

# bcrypt ignores everything past this many bytes of the secret.
MAX_SECRET_BYTES = 72

DUMMY_USERNAME = "$nosuchuser$"
DUMMY_SECRET = b"nosuchuser"


@dataclass(frozen=True)
class AuthSettings:
    """Hashing configuration, built once at startup."""
    bcrypt_rounds: int = 12
    require_system_account: bool = False

    def __post_init__(self) -> None:
        if not (4 <= self.bcrypt_rounds <= 31):
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {self.bcrypt_rounds}")


def parse_records(data: Union[bytes, bytearray], source: str = "<store>") -> List[CredentialRecord]:
    """
    Parse store contents into records.

    Comment and blank lines are skipped; every other line must have exactly
    three fields.

    Raises:
        CredentialStoreError: On undecodable data or a malformed row
    """
    try:
        text = bytes(data).decode("utf-8")
    except UnicodeDecodeError as e:
        raise CredentialStoreError(f"{source} is not valid UTF-8: {e}")

    records = []
    reader = csv.reader(io.StringIO(text), delimiter=FIELD_DELIMITER, strict=True)
    try:
        for row in reader:
            if not row or (len(row) == 1 and not row[0].strip()):
                continue
            if row[0].startswith(COMMENT_PREFIX):
                continue
            if len(row) != FIELDS_PER_RECORD:
                raise CredentialStoreError(
                    f"{source} line {reader.line_num}: expected {FIELDS_PER_RECORD} fields, got {len(row)}")
            records.append(CredentialRecord(*row))
    except csv.Error as e:
        raise CredentialStoreError(f"{source} line {reader.line_num}: {e}")

    return records


def format_records(records: List[CredentialRecord]) -> str:
    """Render the header row followed by one line per record."""
    out = io.StringIO()
    writer = csv.writer(out, delimiter=FIELD_DELIMITER, lineterminator="\n")
    writer.writerow(HEADER_FIELDS)
    for record in records:
        writer.writerow(record.to_fields())
    return out.getvalue()


def make_dummy_record(rounds: int) -> CredentialRecord:
    """A record no login can match, with a valid salt of the given cost."""
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(DUMMY_SECRET, salt)
    return CredentialRecord(DUMMY_USERNAME, salt.decode("ascii"), hashed.decode("ascii"))


def _scrub(buffer: Optional[bytearray]) -> None:
    if buffer is None:
        return
    for i in range(len(buffer)):
        buffer[i] = 0


class LocalPasswordStore(IPasswordVerifier):
    """
    Application-local credential database.

    Args:
        path: Location of the store file
        context: Capabilities used to read the store and resolve accounts
        settings: Hashing configuration
    """

    def __init__(self, path: Union[str, Path], context: AuthContext,
                 settings: Optional[AuthSettings] = None) -> None:
        self._path = Path(path)
        self._context = context
        self._settings = settings or AuthSettings()
        self._dummy_record = make_dummy_record(self._settings.bcrypt_rounds)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> AuthSettings:
        return self._settings

    @property
    def dummy_record(self) -> CredentialRecord:
        return self._dummy_record

    def verify(self, username: str, password: str) -> bool:
        return self.verify_local(username, password)

    def verify_local(self, username: str, secret: str,
                     require_system_account: Optional[bool] = None) -> bool:
        """
        Verify a presented secret against the store.

        Args:
            username: Presented username
            secret: Presented password
            require_system_account: Also require a matching system account;
                defaults to the store settings

        Returns:
            True only for a known user with a matching secret (and, when
            required, an existing system account)

        Raises:
            CredentialStoreError: If the store cannot be read or parsed
        """
        if require_system_account is None:
            require_system_account = self._settings.require_system_account

        buffer: Optional[bytearray] = None
        valid = False
        try:
            try:
                buffer = self._context.resource_reader.read(str(self._path))
            except OSError as e:
                raise CredentialStoreError(f"cannot read {self._path}: {e.strerror or e}")

            records = parse_records(buffer, str(self._path))
            record = next((r for r in records if r.username == username), None)
            if record is None:
                record = self._dummy_record

            valid = self._check(record, secret) and record is not self._dummy_record
        finally:
            _scrub(buffer)

        # Looked up on every attempt, whatever the password check said
        if require_system_account:
            account = self._context.account_resolver.lookup(username)
            if account is None:
                valid = False

        return valid

    def _check(self, record: CredentialRecord, secret: str) -> bool:
        try:
            computed = bcrypt.hashpw(secret.encode("utf-8"), record.salt.encode("ascii"))
        except (ValueError, UnicodeEncodeError):
            # Oversized secret or corrupt salt
            return False
        return hmac.compare_digest(computed, record.password_hash.encode("ascii", "replace"))

    def read_records(self) -> List[CredentialRecord]:
        """
        Read every record in the store.

        A missing store reads as empty.
        """
        buffer: Optional[bytearray] = None
        try:
            try:
                buffer = self._context.resource_reader.read(str(self._path))
            except FileNotFoundError:
                return []
            except OSError as e:
                raise CredentialStoreError(f"cannot read {self._path}: {e.strerror or e}")
            return parse_records(buffer, str(self._path))
        finally:
            _scrub(buffer)

    def initialize(self) -> bool:
        """
        Create an empty store holding only the header row.

        Returns:
            True if a new store was created, False if one already existed
        """
        with self._locked():
            if self._path.exists():
                return False
            self._replace([])
        logger.info(f"Created password store {self._path}")
        return True

    def set_password(self, username: str, secret: str) -> None:
        """
        Create or update the record for ``username``.

        Raises:
            CredentialStoreError: On an invalid username or secret, or when
                the store cannot be rewritten
        """
        self._validate_username(username)

        encoded = secret.encode("utf-8")
        if len(encoded) > MAX_SECRET_BYTES:
            raise CredentialStoreError(f"password longer than {MAX_SECRET_BYTES} bytes")

        salt = bcrypt.gensalt(rounds=self._settings.bcrypt_rounds)
        hashed = bcrypt.hashpw(encoded, salt)
        if not bcrypt.checkpw(encoded, hashed):
            raise CredentialStoreError("bcrypt verification of the new hash failed")

        with self._locked():
            records = self.read_records()
            for record in records:
                if record.username == username:
                    record.salt = salt.decode("ascii")
                    record.password_hash = hashed.decode("ascii")
                    break
            else:
                records.append(CredentialRecord(username, salt.decode("ascii"), hashed.decode("ascii")))

            self._replace(records)

        logger.info(f"Password updated for user {username} in {self._path}")

    def _validate_username(self, username: str) -> None:
        if not username:
            raise CredentialStoreError("must specify a username")
        if username.startswith(COMMENT_PREFIX):
            raise CredentialStoreError(f"username may not start with {COMMENT_PREFIX!r}")
        if any(c in username for c in (FIELD_DELIMITER, "\n", "\r", '"')):
            raise CredentialStoreError(f"username contains a reserved character: {username!r}")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold an exclusive advisory lock on the store's sidecar lock file."""
        lock_path = self._path.with_name(self._path.name + ".lock")
        try:
            lock_fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise CredentialStoreError(f"cannot open lock file {lock_path}: {e.strerror or e}")
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            os.close(lock_fd)

    def _replace(self, records: List[CredentialRecord]) -> None:
        """Write ``records`` to a temp file and rename it over the store."""
        directory = self._path.parent
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
        except OSError as e:
            raise CredentialStoreError(f"cannot create temporary file in {directory}: {e.strerror or e}")

        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(format_records(records))
                f.flush()
                os.fsync(f.fileno())

            try:
                os.remove(self._path)
            except FileNotFoundError:
                pass
            os.rename(tmp_name, self._path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise CredentialStoreError(f"cannot replace {self._path}: {e.strerror or e}")
