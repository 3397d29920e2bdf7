"""Last-access ledger shared by the wake router and the idle sweeper."""

import datetime
import math
import threading
import time
from typing import Callable, Dict, NamedTuple, Optional

import structlog

logger = structlog.get_logger()

_ANY = object()


class AccessRecord(NamedTuple):
    """When a container was last accessed.

    ``monotonic`` drives idleness decisions; ``at`` is only for display.
    """

    monotonic: float
    at: datetime.datetime


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ActivityLedger:
    """Thread-safe mapping of container id to last access.

    A single lock guards the whole map. Critical sections only touch the
    dict, so contention stays low for the request volumes a wake trigger
    sees; shard by container id if that stops being true.

    A missing entry means the container has not been accessed since the
    process started and counts as infinitely idle.
    """

    def __init__(
        self,
        monotonic: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._monotonic = monotonic
        self._wall_clock = wall_clock
        self._entries: Dict[str, AccessRecord] = {}
        self._lock = threading.Lock()

    def record_access(self, container_id: str) -> AccessRecord:
        """Record that a container was just accessed."""
        with self._lock:
            previous = self._entries.get(container_id)
            now = self._monotonic()
            if previous is not None and now < previous.monotonic:
                now = previous.monotonic
            record = AccessRecord(now, self._wall_clock())
            self._entries[container_id] = record
        logger.debug("access_recorded", container_id=container_id[:12])
        return record

    def get(self, container_id: str) -> Optional[AccessRecord]:
        with self._lock:
            return self._entries.get(container_id)

    def seconds_since_access(self, container_id: str) -> float:
        """Seconds since the last access, ``math.inf`` if never accessed."""
        with self._lock:
            record = self._entries.get(container_id)
        return self.seconds_since(record)

    def seconds_since(self, record: Optional[AccessRecord]) -> float:
        if record is None:
            return math.inf
        return max(0.0, self._monotonic() - record.monotonic)

    def forget(self, container_id: str, expected: object = _ANY) -> bool:
        """Remove the entry for a container.

        With ``expected``, the entry is removed only if it is still that
        record (``None`` meaning "no entry"), so an access recorded while a
        stop was in flight is kept. Returns True if an entry was removed.
        """
        with self._lock:
            current = self._entries.get(container_id)
            if expected is not _ANY and current != expected:
                return False
            return self._entries.pop(container_id, None) is not None

    def snapshot(self) -> Dict[str, AccessRecord]:
        """Get a copy of all entries (for the status listing)."""
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
