"""
Bearer token cache.

One cache object is owned per upstream and handed to every client that
talks to it, so a token acquired by one request is reused by all others
until it comes within ``safety_margin`` seconds of expiry.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from core.errors import ErrorCode, UpstreamError, classify_error

__all__ = ["Credential", "CredentialState", "CredentialCache"]

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = 60.0

# (token, expires_in_seconds)
Authenticator = Callable[[], Awaitable[tuple[str, float]]]


class CredentialState(Enum):
    """Lifecycle of a cached credential."""

    EMPTY = "empty"
    AUTHENTICATING = "authenticating"
    VALID = "valid"
    EXPIRING = "expiring"  # Inside the safety margin; next caller refreshes
    INVALIDATED = "invalidated"


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: float

    def is_valid(self, now: float, margin: float) -> bool:
        return now < self.expires_at - margin


class CredentialCache:
    """
    Lazily refreshed bearer token shared by all callers of one upstream.

    Reads of a valid token take no lock. Refreshes are serialized so that
    concurrent callers arriving while a token is missing wait for the same
    authentication instead of each starting their own.
    """

    def __init__(
        self,
        authenticate: Authenticator,
        *,
        clock: Callable[[], float] = time.monotonic,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        name: str = "credentials",
    ):
        self._authenticate = authenticate
        self._clock = clock
        self.safety_margin = safety_margin
        self.name = name

        self._credential: Optional[Credential] = None
        self._invalidated = False
        self._authenticating = False
        self._lock = asyncio.Lock()
        self.auth_count = 0

    @property
    def state(self) -> CredentialState:
        if self._authenticating:
            return CredentialState.AUTHENTICATING
        if self._credential is None:
            return (
                CredentialState.INVALIDATED
                if self._invalidated
                else CredentialState.EMPTY
            )
        if self._credential.is_valid(self._clock(), self.safety_margin):
            return CredentialState.VALID
        return CredentialState.EXPIRING

    def peek(self) -> Optional[str]:
        """Return the cached token if it is still usable, without any I/O."""
        credential = self._credential
        if credential and credential.is_valid(self._clock(), self.safety_margin):
            return credential.token
        return None

    async def get_token(self) -> str:
        """
        Return a usable bearer token, authenticating if necessary.

        Raises:
            UpstreamError: when authentication fails. A 401/403 from the
                auth endpoint clears the cache and is raised immediately.
        """
        token = self.peek()
        if token is not None:
            return token

        async with self._lock:
            # Another caller may have refreshed while we waited.
            token = self.peek()
            if token is not None:
                return token
            return await self._refresh()

    def invalidate(self) -> None:
        """Drop the cached token after an authoritative 401/403."""
        if self._credential is not None:
            logger.info(f"[{self.name}] Invalidating cached token")
        self._credential = None
        self._invalidated = True

    async def _refresh(self) -> str:
        self._authenticating = True
        try:
            token, expires_in = await self._authenticate()
        except Exception as e:
            error = classify_error(e)
            if error.code in (ErrorCode.AUTH_ERROR, ErrorCode.QUOTA_EXCEEDED):
                self.invalidate()
                logger.error(f"[{self.name}] Authentication rejected: {error.message}")
            else:
                logger.warning(f"[{self.name}] Authentication failed: {error.message}")
            raise UpstreamError(error) from e
        finally:
            self._authenticating = False

        self.auth_count += 1
        self._credential = Credential(token, self._clock() + float(expires_in))
        self._invalidated = False
        logger.debug(f"[{self.name}] Token acquired, expires in {expires_in}s")
        return token
