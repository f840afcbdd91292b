"""In-memory credential cache shared by the login boundary and the executor.

Entries are keyed by a per-session id, expire after a time-to-live, and can be
invalidated on logout. Nothing here is ever written to disk or logged.
"""

import logging
import threading
import time

logger = logging.getLogger(__name__)


class Credential:
    """Opaque secret; ``repr`` and ``str`` never show the value."""

    __slots__ = ("_secret",)

    def __init__(self, secret: str):
        self._secret = secret

    def reveal(self) -> str:
        return self._secret

    def __eq__(self, other):
        if isinstance(other, Credential):
            return self._secret == other._secret
        return NotImplemented

    def __hash__(self):
        return hash(self._secret)

    def __repr__(self):
        return "Credential('********')"

    __str__ = __repr__


class CredentialCache:
    """Lock-guarded store of credentials with expiry.

    A lock that cannot be acquired within ``lock_timeout`` is treated as
    "no credential available" rather than blocking the caller.
    """

    def __init__(self, ttl_seconds: float = 900, lock_timeout: float = 1.0,
                 clock=time.monotonic):
        self._ttl = ttl_seconds
        self._lock_timeout = lock_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Credential, float]] = {}

    def _acquire(self) -> bool:
        if self._lock.acquire(timeout=self._lock_timeout):
            return True
        logger.warning("Credential cache lock busy, treating credential as absent")
        return False

    def _expired(self, stored_at: float, now: float) -> bool:
        return self._ttl > 0 and now - stored_at >= self._ttl

    def store(self, key: str, value) -> bool:
        """Insert or overwrite the credential for *key*. Returns False if the lock was busy."""
        if not isinstance(value, Credential):
            value = Credential(value)
        if not self._acquire():
            return False
        try:
            self._entries[key] = (value, self._clock())
        finally:
            self._lock.release()
        return True

    def load(self, key: str) -> Credential | None:
        if not self._acquire():
            return None
        try:
            entry = self._entries.get(key)
            if entry is None:
                return None
            credential, stored_at = entry
            if self._expired(stored_at, self._clock()):
                del self._entries[key]
                logger.info("Cached credential expired")
                return None
            return credential
        finally:
            self._lock.release()

    def invalidate(self, key: str) -> bool:
        if not self._acquire():
            return False
        try:
            return self._entries.pop(key, None) is not None
        finally:
            self._lock.release()

    def clear(self):
        if not self._acquire():
            return
        try:
            self._entries.clear()
        finally:
            self._lock.release()

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        if not self._acquire():
            return 0
        try:
            now = self._clock()
            stale = [k for k, (_, at) in self._entries.items() if self._expired(at, now)]
            for key in stale:
                del self._entries[key]
        finally:
            self._lock.release()
        if stale:
            logger.info("Purged %d expired credential(s)", len(stale))
        return len(stale)

    def __len__(self):
        with self._lock:
            return len(self._entries)
