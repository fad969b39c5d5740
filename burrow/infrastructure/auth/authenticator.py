"""
Password authentication component.

Wraps the configured verification backend (local store or system shadow
database) and moves the bcrypt work off the event loop.
"""

import asyncio
from typing import Any, Dict

from loguru import logger

from ...core.exceptions import BurrowError
from ...core.interfaces.auth import IPasswordVerifier
from ...core.interfaces.lifecycle import IComponent


class PasswordAuthenticator(IComponent):
    """
    Asynchronous front end for an ``IPasswordVerifier``.

    Every failure, including an unreadable store, is reported to the caller
    as a plain ``False``; the cause is only logged.
    """

    def __init__(self, verifier: IPasswordVerifier, backend: str = "local") -> None:
        self._verifier = verifier
        self._backend = backend
        self._running = False
        self._metrics = {
            'attempts': 0,
            'successes': 0,
            'failures': 0,
            'errors': 0,
        }

    @property
    def name(self) -> str:
        return "PasswordAuthenticator"

    @property
    def verifier(self) -> IPasswordVerifier:
        return self._verifier

    async def start(self) -> None:
        self._running = True
        logger.info(f"Password authentication using the {self._backend} backend")

    async def stop(self) -> None:
        self._running = False

    async def check_health(self) -> Dict[str, Any]:
        return {
            'healthy': self._metrics['errors'] == 0 or self._metrics['successes'] > 0,
            'status': 'running' if self._running else 'stopped',
            'details': {
                'backend': self._backend,
                **self._metrics,
            }
        }

    async def authenticate(self, username: str, password: str, peer: str = "") -> bool:
        """
        Verify a username/password pair.

        Args:
            username: Presented username
            password: Presented password
            peer: Remote address, for logging

        Returns:
            True if the credentials are valid
        """
        self._metrics['attempts'] += 1

        try:
            valid = await asyncio.to_thread(self._verifier.verify, username, password)
        except BurrowError as e:
            self._metrics['errors'] += 1
            self._metrics['failures'] += 1
            logger.error(f"Authentication backend error for {username} from {peer or 'unknown'}: {e}")
            return False

        if valid:
            self._metrics['successes'] += 1
            logger.info(f"Accepted password for {username} from {peer or 'unknown'}")
        else:
            self._metrics['failures'] += 1
            logger.warning(f"Failed password for {username} from {peer or 'unknown'}")

        return valid
