"""Caller-owned access-token cache for the backtest service.

Holds a single ``{value, expiry}`` pair.  The owner creates one and injects it
into ``BacktestClient``; there is no process-wide token state.
"""

import logging
import threading
import time
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

# refresh() -> (token, ttl_seconds)
TokenRefresher = Callable[[], Tuple[str, float]]


class AccessTokenCache:
    """Thread-safe single-token cache with expiry and optional refresh."""

    def __init__(
        self,
        refresh: Optional[TokenRefresher] = None,
        clock: Callable[[], float] = time.time,
        skew_seconds: float = 30.0,
    ):
        self._refresh = refresh
        self._clock = clock
        self._skew = skew_seconds
        self._lock = threading.Lock()
        self._value: Optional[str] = None
        self._expires_at: float = 0.0

    def set(self, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Store a token; ``ttl_seconds=None`` means it never expires."""
        with self._lock:
            self._value = value
            self._expires_at = float('inf') if ttl_seconds is None else self._clock() + ttl_seconds

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._expires_at = 0.0

    @property
    def is_valid(self) -> bool:
        with self._lock:
            return self._is_valid_locked()

    def _is_valid_locked(self) -> bool:
        return bool(self._value) and self._clock() < self._expires_at - self._skew

    def get(self) -> Optional[str]:
        """Return a valid token, refreshing it when expired and possible."""
        with self._lock:
            if self._is_valid_locked():
                return self._value

        if self._refresh is None:
            return None

        # Refresh outside the lock; the refresher may do network I/O.
        token, ttl = self._refresh()
        if not token:
            logger.warning("Token refresh returned an empty token")
            return None
        self.set(token, ttl)
        logger.debug(f"Access token refreshed (ttl={ttl}s)")
        return token
