"""
Host key loading and first-run generation.
"""

import os
from pathlib import Path

import asyncssh
from loguru import logger

from ...core.exceptions import ConfigurationError

HOST_KEY_ALGORITHM = "ssh-ed25519"


def load_host_key(path: str, generate: bool = True) -> asyncssh.SSHKey:
    """
    Load the server's private host key, creating it if allowed.

    Args:
        path: Private key location; the public key is written next to it
        generate: Generate an ed25519 key when ``path`` does not exist

    Raises:
        ConfigurationError: If the key is missing and may not be generated,
            or cannot be read or written
    """
    key_path = Path(path)

    if key_path.exists():
        try:
            return asyncssh.read_private_key(str(key_path))
        except (OSError, asyncssh.KeyImportError) as e:
            raise ConfigurationError(f"Cannot load host key {key_path}: {e}")

    if not generate:
        raise ConfigurationError(f"Host key {key_path} does not exist")

    key = asyncssh.generate_private_key(HOST_KEY_ALGORITHM)
    try:
        key_path.parent.mkdir(parents=True, exist_ok=True)
        key.write_private_key(str(key_path))
        os.chmod(key_path, 0o600)
        key.write_public_key(str(key_path) + ".pub")
    except OSError as e:
        raise ConfigurationError(f"Cannot write host key {key_path}: {e}")

    logger.info(f"Generated {HOST_KEY_ALGORITHM} host key {key_path}")
    return key
