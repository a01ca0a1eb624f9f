import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

EVICTION_POLICIES = ("fifo", "lru")


@dataclass
class _Entry(Generic[T]):
    value: T
    created_at: float
    last_access: float


class SessionStore(Generic[T]):
    """
    Bounded, lock-protected map of live per-session objects.

    Sessions are created on demand by `factory(session_id)`. When the store
    grows past `max_sessions` the oldest session is evicted: oldest created
    under "fifo", least recently accessed under "lru". With `ttl_seconds`
    set, a session idle for longer than the TTL is dropped when next
    accessed.

    In production, this would be backed by Redis or a database.
    """

    def __init__(
        self,
        factory: Callable[[str], T],
        max_sessions: int = 100,
        eviction: str = "fifo",
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        if eviction not in EVICTION_POLICIES:
            raise ValueError(f"Unknown eviction policy: {eviction}")
        self.factory = factory
        self.max_sessions = max_sessions
        self.eviction = eviction
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: "OrderedDict[str, _Entry[T]]" = OrderedDict()
        self._lock = threading.Lock()
        self.evictions = 0
        self.expirations = 0

    def _lookup(self, session_id: str, now: float) -> Optional[_Entry[T]]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        if self.ttl_seconds is not None and now - entry.last_access > self.ttl_seconds:
            del self._sessions[session_id]
            self.expirations += 1
            logger.info("Session %s expired", session_id)
            return None
        entry.last_access = now
        if self.eviction == "lru":
            self._sessions.move_to_end(session_id)
        return entry

    def get(self, session_id: str) -> Optional[T]:
        with self._lock:
            entry = self._lookup(session_id, self._clock())
            return entry.value if entry else None

    def get_or_create(self, session_id: str) -> T:
        """Return the session's object, creating it (and evicting) if needed."""
        with self._lock:
            now = self._clock()
            entry = self._lookup(session_id, now)
            if entry is not None:
                return entry.value

            value = self.factory(session_id)
            self._sessions[session_id] = _Entry(value=value, created_at=now, last_access=now)
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                self.evictions += 1
                logger.info("Evicted session %s (%s)", evicted, self.eviction)
            return value

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._sessions),
                "maxSessions": self.max_sessions,
                "eviction": self.eviction,
                "ttlSeconds": self.ttl_seconds,
                "evictions": self.evictions,
                "expirations": self.expirations,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions
