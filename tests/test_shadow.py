"""
Tests for the system shadow database backend.
"""

import time
from pathlib import Path
from typing import Callable, List, Optional
from unittest.mock import patch

import bcrypt
import pytest
from loguru import logger
from passlib.hash import sha512_crypt

from burrow.core.domain.credentials import SystemAccount
from burrow.core.exceptions import ConfigurationError, CredentialStoreError
from burrow.core.interfaces.auth import AuthContext, IAccountResolver
from burrow.infrastructure.auth.shadow import (
    SHA512_DEFAULT_ROUNDS, ShadowPasswordVerifier, crypt_context, default_shadow_path, hash_scheme
)
from burrow.infrastructure.auth.system import FileResourceReader


def elapsed(func: Callable[..., object], *args: object) -> float:
    start = time.perf_counter()
    func(*args)
    return time.perf_counter() - start


class NoAccounts(IAccountResolver):
    def lookup(self, username: str) -> Optional[SystemAccount]:
        return None


@pytest.fixture
def context() -> AuthContext:
    return AuthContext(resource_reader=FileResourceReader(), account_resolver=NoAccounts())


@pytest.fixture
def shadow_file(tmp_path: Path) -> Path:
    sha_hash = sha512_crypt.using(rounds=5000).hash("sha-secret")
    bcrypt_hash = bcrypt.hashpw(b"bcrypt-secret", bcrypt.gensalt(4)).decode()
    path = tmp_path / "shadow"
    path.write_text(
        "root:!:19000:0:99999:7:::\n"
        f"alice:{sha_hash}:19000:0:99999:7:::\n"
        f"bob:{bcrypt_hash}:19000:0:99999:7:::\n"
        "daemon:*:19000:0:99999:7:::\n"
        "nopass::19000:0:99999:7:::\n"
    )
    return path


class TestShadowPasswordVerifier:
    """Test cases for ShadowPasswordVerifier."""

    def test_sha512_crypt_password(self, context: AuthContext, shadow_file: Path) -> None:
        verifier = ShadowPasswordVerifier(context, str(shadow_file))

        assert verifier.verify("alice", "sha-secret") is True
        assert verifier.verify("alice", "wrong") is False

    def test_bcrypt_password(self, context: AuthContext, shadow_file: Path) -> None:
        verifier = ShadowPasswordVerifier(context, str(shadow_file))

        assert verifier.verify("bob", "bcrypt-secret") is True
        assert verifier.verify("bob", "wrong") is False

    @pytest.mark.parametrize("username", ["root", "daemon", "nopass"])
    def test_locked_and_empty_entries_fail(self, context: AuthContext, shadow_file: Path,
                                           username: str) -> None:
        verifier = ShadowPasswordVerifier(context, str(shadow_file))

        with patch.object(crypt_context, "verify", wraps=crypt_context.verify) as verify:
            assert verifier.verify(username, "") is False
            assert verifier.verify(username, "anything") is False

        assert [c.args[1] for c in verify.call_args_list] == [verifier.dummy_hash] * 2

    def test_missing_user_is_checked_against_dummy(self, context: AuthContext,
                                                   shadow_file: Path) -> None:
        verifier = ShadowPasswordVerifier(context, str(shadow_file))

        with patch.object(crypt_context, "verify", wraps=crypt_context.verify) as verify:
            assert verifier.verify("mallory", "anything") is False

        verify.assert_called_once_with("anything", verifier.dummy_hash)

    def test_dummy_matches_default_sha512_cost(self, context: AuthContext, shadow_file: Path) -> None:
        verifier = ShadowPasswordVerifier(context, str(shadow_file))

        dummy = sha512_crypt.from_string(verifier.dummy_hash)

        assert dummy.rounds == SHA512_DEFAULT_ROUNDS
        assert crypt_context.verify("anything", verifier.dummy_hash) is False

    def test_missing_user_costs_as_much_as_sha512_user(self, context: AuthContext,
                                                       shadow_file: Path) -> None:
        verifier = ShadowPasswordVerifier(context, str(shadow_file))

        known = min(elapsed(verifier.verify, "alice", "wrong") for _ in range(3))
        unknown = min(elapsed(verifier.verify, "mallory", "wrong") for _ in range(3))

        assert unknown > known / 3

    def test_unsupported_scheme_is_logged(self, context: AuthContext, tmp_path: Path) -> None:
        path = tmp_path / "shadow"
        path.write_text("carol:$y$j9T$abcdefghijkl$0123456789abcdefghijklmnopqrstuvwxyzABCDE:19000::::::\n")
        verifier = ShadowPasswordVerifier(context, str(path))
        messages: List[str] = []
        sink_id = logger.add(messages.append, level="DEBUG", format="{message}")
        try:
            assert verifier.verify("carol", "secret") is False
        finally:
            logger.remove(sink_id)

        assert any("Unsupported hash scheme $y$ for carol" in m for m in messages)

    def test_unreadable_database(self, context: AuthContext, tmp_path: Path) -> None:
        verifier = ShadowPasswordVerifier(context, str(tmp_path / "missing"))

        with pytest.raises(CredentialStoreError, match="cannot read"):
            verifier.verify("alice", "secret")

    def test_path_defaults_to_platform(self, context: AuthContext) -> None:
        with patch("burrow.infrastructure.auth.shadow.default_shadow_path", return_value="/etc/shadow"):
            verifier = ShadowPasswordVerifier(context)

        assert verifier.path == "/etc/shadow"

    def test_unsupported_platform(self, context: AuthContext) -> None:
        with patch("burrow.infrastructure.auth.shadow.default_shadow_path", return_value=None):
            with pytest.raises(ConfigurationError):
                ShadowPasswordVerifier(context)


class TestDefaultShadowPath:
    """Test cases for default_shadow_path."""

    def test_linux(self) -> None:
        assert default_shadow_path("linux") == "/etc/shadow"

    def test_freebsd(self) -> None:
        assert default_shadow_path("freebsd13") == "/etc/master.passwd"

    def test_other_platforms(self) -> None:
        assert default_shadow_path("darwin") is None
        assert default_shadow_path("win32") is None


class TestHashScheme:
    """Test cases for hash_scheme."""

    @pytest.mark.parametrize("hashed,scheme", [
        ("$6$salt$hash", "$6$"),
        ("$y$j9T$salt$hash", "$y$"),
        ("!$6$salt$hash", "!"),
        ("", ""),
    ])
    def test_prefix(self, hashed: str, scheme: str) -> None:
        assert hash_scheme(hashed) == scheme
