"""Repair-and-retry wrapper for remote operations that may fail on auth."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import is_auth_error, normalize_error
from .oauth import AuthManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AuthRetryExecutor:
    """Runs an operation, repairing credentials and retrying once on auth failure.

    Repair tries a token refresh first and falls back to interactive
    authorization when there is no refresh token or the refresh fails. At
    most ``max_retries`` extra attempts are made, whichever repair path ran.
    """

    def __init__(self, auth: AuthManager, max_retries: int = 1):
        self.auth = auth
        self.max_retries = max_retries

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_retries or not is_auth_error(e):
                    raise
                attempt += 1
                shape = normalize_error(e)
                logger.warning(
                    f"Authentication error (status={shape.http_status}, code={shape.code}), "
                    f"repairing credentials and retrying ({attempt}/{self.max_retries})"
                )
                await self._repair()

    async def _repair(self) -> None:
        if await self.auth.refresh():
            return
        logger.info("Refresh unavailable or failed, falling back to interactive authorization")
        await self.auth.authorize_interactively()

