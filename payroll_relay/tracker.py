"""In-memory correlation of sent notifications to their recipients."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable, Dict

from .models import NotificationRecord


def message_handle(channel: str, ts: str) -> str:
    """Return the tracker key for the message *ts* posted in *channel*."""

    return f"{channel}:{ts}"


class AcknowledgementTracker:
    """Remember which recipient each payroll notification was sent to.

    Entries live in process memory only and expire after *ttl*, so a restart
    forgets every outstanding notification. Pass ``ttl=None`` to keep entries
    until they are consumed.
    """

    def __init__(
        self,
        *,
        ttl: timedelta | None = timedelta(days=45),
        timer: Callable[[], float] | None = None,
    ) -> None:
        if ttl is not None and ttl.total_seconds() <= 0:
            raise ValueError("Tracker TTL must be greater than zero seconds.")

        self._ttl = ttl
        self._timer = timer or time.monotonic
        self._lock = threading.Lock()
        self._records: Dict[str, NotificationRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def record(self, handle: str, recipient_id: str, recipient_name: str) -> NotificationRecord:
        """Store the recipient for *handle*, replacing any previous entry."""

        record = NotificationRecord(
            recipient_id=recipient_id,
            recipient_name=recipient_name,
            recorded_at=self._timer(),
        )
        with self._lock:
            self._purge_locked(record.recorded_at)
            self._records[handle] = record
        return record

    def lookup(self, handle: str) -> NotificationRecord | None:
        """Return the record for *handle* without removing it."""

        now = self._timer()
        with self._lock:
            record = self._records.get(handle)
            if record is None:
                return None
            if self._expired(record, now):
                del self._records[handle]
                return None
            return record

    def consume(self, handle: str) -> NotificationRecord | None:
        """Return and remove the record for *handle*."""

        now = self._timer()
        with self._lock:
            record = self._records.pop(handle, None)
        if record is None or self._expired(record, now):
            return None
        return record

    def restore(self, handle: str, record: NotificationRecord) -> None:
        """Put back a record taken with consume(), keeping its original age."""

        with self._lock:
            self._records.setdefault(handle, record)

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""

        now = self._timer()
        with self._lock:
            return self._purge_locked(now)

    def _expired(self, record: NotificationRecord, now: float) -> bool:
        if self._ttl is None:
            return False
        return now - record.recorded_at >= self._ttl.total_seconds()

    def _purge_locked(self, now: float) -> int:
        if self._ttl is None:
            return 0
        stale = [handle for handle, record in self._records.items() if self._expired(record, now)]
        for handle in stale:
            del self._records[handle]
        return len(stale)
