"""
Replay protection capability.

The verifier consumes this interface and never assumes a backend. Suggested
production mappings:
- Redis: SET jti "used" NX EXAT {expires_at}
- Memcached: add(jti, "used", expires_at - now)
- SQL: INSERT INTO used_challenges (jti, expires_at), see SqlReplayStore
"""

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable


class ReplayStore(ABC):
    @abstractmethod
    def is_used(self, jti: str) -> bool:
        """Return True if the challenge id has already been redeemed."""

    @abstractmethod
    def mark_as_used(self, jti: str, expires_at: int) -> None:
        """Record the id as used until at least `expires_at` (epoch seconds)."""

    def claim(self, jti: str, expires_at: int) -> bool:
        """
        Mark the id as used unless it already is. Returns False if it was.

        This default is two separate calls and therefore racy; backends that
        can do an atomic conditional set should override it.
        """
        if self.is_used(jti):
            return False
        self.mark_as_used(jti, expires_at)
        return True


class InMemoryReplayStore(ReplayStore):
    """Process-local store for demos, tests and single-process deployments."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._used: dict[str, int] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._used)

    def is_used(self, jti: str) -> bool:
        with self._lock:
            return jti in self._used

    def mark_as_used(self, jti: str, expires_at: int) -> None:
        with self._lock:
            self._used[jti] = max(expires_at, self._used.get(jti, expires_at))

    def claim(self, jti: str, expires_at: int) -> bool:
        with self._lock:
            if jti in self._used:
                return False
            self._used[jti] = expires_at
            return True

    def purge_expired(self) -> int:
        """Forget ids whose challenge has expired. Returns count removed."""
        now = int(self._clock())
        with self._lock:
            expired = [jti for jti, expires_at in self._used.items() if expires_at < now]
            for jti in expired:
                del self._used[jti]
        return len(expired)
