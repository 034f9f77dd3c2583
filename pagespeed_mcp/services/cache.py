# pagespeed_mcp/services/cache.py
import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from pagespeed_mcp.core.logging import get_logger

T = TypeVar("T")

DEFAULT_TTL = 5 * 60
SWEEP_INTERVAL = 10 * 60

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    created_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now > self.expires_at


class ResponseCache:
    """
    In-memory TTL cache for upstream responses.

    Expired entries are evicted when read, and a background sweep (started
    and stopped by the owner) removes the ones that are never read again.
    The lock is only held for single map operations.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, key: str):
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("cache_miss", key=key)
                return None
            if entry.expired(now):
                del self._entries[key]
                logger.debug("cache_expired", key=key)
                return None
        logger.debug("cache_hit", key=key)
        return entry.value

    def set(self, key: str, value, ttl: Optional[float] = None) -> None:
        now = self._clock()
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl)
        logger.debug("cache_stored", key=key, ttl=ttl)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        logger.info("cache_cleared", removed=removed)
        return removed

    def cleanup(self) -> int:
        """Removes every expired entry and returns how many were dropped."""
        now = self._clock()
        with self._lock:
            stale: List[str] = [k for k, e in self._entries.items() if e.expired(now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("cache_swept", removed=len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- Sweep lifecycle ---
    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Starts the periodic sweep on the running event loop."""
        if self.running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.cleanup()


def psi_cache_key(url: str, strategy: str, categories: List[str], locale: str) -> str:
    return f"psi:{url}:{strategy}:{','.join(sorted(categories))}:{locale}"


def crux_cache_key(url: str, form_factor: Optional[str] = None) -> str:
    return f"crux:{url}:{form_factor or 'default'}"
