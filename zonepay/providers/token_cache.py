"""Short-lived bearer token cache."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

DEFAULT_TTL = 3600.0
EXPIRY_SKEW = 60.0

TokenFetcher = Callable[[], Awaitable[tuple[str, Optional[float]]]]


class TokenCache:
    """
    Holds one access token and refreshes it only once it has expired.

    ``fetch`` returns ``(token, expires_in_seconds)``. Concurrent callers
    waiting on an expired token share a single refresh.
    """

    def __init__(
        self,
        fetch: TokenFetcher,
        skew: float = EXPIRY_SKEW,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._skew = skew
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    async def get(self) -> str:
        if self._valid():
            return self._token

        async with self._lock:
            if self._valid():
                return self._token
            token, expires_in = await self._fetch()
            ttl = expires_in if expires_in and expires_in > 0 else DEFAULT_TTL
            self._token = token
            self._expires_at = self._clock() + max(ttl - self._skew, 0.0)
            return token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
