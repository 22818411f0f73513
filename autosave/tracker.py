from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from schemas.resume import ResumeDocument
from store.documents import ResumeStore

logger = logging.getLogger(__name__)


class TrackerState(str, Enum):
    UNTRACKED = "untracked"
    IDLE = "idle"
    PENDING_SAVE = "pending_save"


@dataclass
class _Tracked:
    last_known_data: ResumeDocument
    touched_at: float
    pending_save: bool = False
    pending_data: Optional[ResumeDocument] = None
    last_saved_at: Optional[datetime] = None
    timer: Any = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


def _same(a: Optional[ResumeDocument], b: Optional[ResumeDocument]) -> bool:
    if a is None or b is None:
        return a is b
    return a.user_fields() == b.user_fields()


class ChangeTracker:
    """
    Coalesces rapid edits per user into one deferred relaxed save.

    Each user key moves Untracked -> Idle on load/create, Idle -> PendingSave
    when an edit differs from the last known data, and back to Idle once the
    debounce timer fires and the save succeeds. A failed save leaves the key
    pending; the next differing edit re-arms the timer.

    Entries live in a bounded map: idle entries expire after `idle_ttl`
    seconds and the least recently touched idle entry is dropped when the map
    grows past `capacity`.
    """

    def __init__(
        self,
        store: ResumeStore,
        debounce_seconds: float = 5.0,
        capacity: int = 1024,
        idle_ttl: float = 1800.0,
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.capacity = capacity
        self.idle_ttl = idle_ttl
        self._timer_factory = timer_factory
        self._clock = clock
        self._entries: "OrderedDict[str, _Tracked]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def _touch(self, key: str, entry: _Tracked) -> None:
        entry.touched_at = self._clock()
        self._entries.move_to_end(key)

    def _evict(self, keep: Optional[str] = None) -> None:
        now = self._clock()
        for key in [
            k
            for k, e in self._entries.items()
            if k != keep and not e.pending_save and now - e.touched_at > self.idle_ttl
        ]:
            del self._entries[key]
            logger.debug("Evicted idle change tracker for %s", key)

        while len(self._entries) > self.capacity:
            others = [k for k in self._entries if k != keep]
            victim = next(
                (k for k in others if not self._entries[k].pending_save), None
            )
            if victim is None:
                victim = others[0]
                logger.warning(
                    "Change tracker full; dropping pending autosave for %s", victim
                )
            self._entries.pop(victim).cancel_timer()

    def _arm(self, key: str, entry: _Tracked) -> None:
        entry.cancel_timer()
        timer = self._timer_factory(self.debounce_seconds, self.flush, args=(key,))
        timer.daemon = True
        entry.timer = timer
        timer.start()

    def track(self, key: str, snapshot: ResumeDocument) -> None:
        """Record `snapshot` as the persisted state for `key`, dropping any pending save."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Tracked(last_known_data=snapshot, touched_at=self._clock())
                entry.last_saved_at = snapshot.last_saved_at
                self._entries[key] = entry
            else:
                entry.cancel_timer()
                entry.last_known_data = snapshot
                entry.pending_save = False
                entry.pending_data = None
                if snapshot.last_saved_at is not None:
                    entry.last_saved_at = snapshot.last_saved_at
            self._touch(key, entry)
            self._evict(keep=key)

    def _persisted(self, snapshot: ResumeDocument) -> Optional[ResumeDocument]:
        if not snapshot.email:
            return None
        return self.store.find_by_email(snapshot.email)

    def record_edit(self, key: str, snapshot: ResumeDocument) -> bool:
        """
        Note an edit for `key`. Returns True when a save is now scheduled.

        An untracked key (never loaded, evicted, or lost on restart) is
        compared against the stored document with the same email. When
        nothing is stored yet the edit only starts tracking.
        """
        with self._lock:
            self._evict()
            known = key in self._entries
        baseline = None if known else self._persisted(snapshot)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                if baseline is None:
                    self._entries[key] = _Tracked(
                        last_known_data=snapshot, touched_at=self._clock()
                    )
                    self._evict(keep=key)
                    return False
                entry = _Tracked(
                    last_known_data=baseline,
                    touched_at=self._clock(),
                    last_saved_at=baseline.last_saved_at,
                )
                self._entries[key] = entry

            self._touch(key, entry)
            scheduled = not _same(entry.last_known_data, snapshot)
            if scheduled:
                entry.pending_save = True
                entry.pending_data = snapshot
                self._arm(key, entry)
            elif entry.pending_save:
                entry.cancel_timer()
                entry.pending_save = False
                entry.pending_data = None
            self._evict(keep=key)
            return scheduled

    def flush(self, key: str) -> bool:
        """Perform the deferred save for `key`. Errors are logged, never raised."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.pending_save:
                return False
            snapshot = entry.pending_data
            entry.timer = None
            if snapshot is None or _same(entry.last_known_data, snapshot):
                entry.pending_save = False
                entry.pending_data = None
                return False

        logger.info("Auto-saving resume for %s", key)
        try:
            saved = self.store.save(snapshot, autosave=True)
        except Exception:
            logger.exception("Auto-save failed for %s", key)
            return False

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return True
            entry.last_known_data = saved
            entry.last_saved_at = saved.last_saved_at
            if entry.pending_data is snapshot:
                entry.pending_save = False
                entry.pending_data = None
        return True

    def state(self, key: str) -> TrackerState:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return TrackerState.UNTRACKED
            return TrackerState.PENDING_SAVE if entry.pending_save else TrackerState.IDLE

    def status(self, key: str) -> Dict[str, Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                state, last_saved_at = TrackerState.UNTRACKED, None
            else:
                state = TrackerState.PENDING_SAVE if entry.pending_save else TrackerState.IDLE
                last_saved_at = entry.last_saved_at
        return {
            "state": state.value,
            "pending": state is TrackerState.PENDING_SAVE,
            "lastSavedAt": last_saved_at.isoformat() if last_saved_at else None,
        }

    def shutdown(self) -> None:
        with self._lock:
            for entry in self._entries.values():
                entry.cancel_timer()
