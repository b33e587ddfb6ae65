"""
Persisted maintenance guard and task status records.

Merge and rebuild hold the guard while they run so at most one of them
composes a new snapshot at a time. The guard expires so that a crashed holder
does not block maintenance forever. The store offers no compare-and-set, so
acquisition re-reads the guard after writing it and backs off if another
holder won the race.
"""

import json
import logging
import uuid
from typing import Any, Dict, Optional

from files_index.adapters.storage import BaseObjectStore
from files_index.errors import MaintenanceLockHeld
from files_index.index.keys import LOCK_KEY, TASK_STATUS_KEY, now_ms

logger = logging.getLogger(__name__)


def _read_json(store: BaseObjectStore, key: str) -> Optional[Dict[str, Any]]:
    raw = store.get(key)
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning(f"Ignoring unreadable record at {key}")
        return None
    return value if isinstance(value, dict) else None


def get_lock_state(store: BaseObjectStore) -> Optional[Dict[str, Any]]:
    """The current guard, or None when it is free or expired."""
    state = _read_json(store, LOCK_KEY)
    if state is None:
        return None
    if int(state.get("expiresAt", 0)) <= now_ms():
        return None
    return state


class MaintenanceLock:
    """Context manager holding the maintenance guard for one task."""

    def __init__(self, store: BaseObjectStore, task: str, ttl_seconds: int = 300):
        self.store = store
        self.task = task
        self.ttl_ms = ttl_seconds * 1000
        self.holder = uuid.uuid4().hex
        self.acquired = False

    def acquire(self) -> None:
        current = get_lock_state(self.store)
        if current is not None and current.get("holder") != self.holder:
            raise MaintenanceLockHeld(current.get("task", "unknown"), int(current.get("expiresAt", 0)))

        acquired_at = now_ms()
        state = {
            "holder": self.holder,
            "task": self.task,
            "acquiredAt": acquired_at,
            "expiresAt": acquired_at + self.ttl_ms,
        }
        self.store.put(LOCK_KEY, json.dumps(state))

        confirmed = _read_json(self.store, LOCK_KEY)
        if not confirmed or confirmed.get("holder") != self.holder:
            other = confirmed or {}
            raise MaintenanceLockHeld(other.get("task", "unknown"), int(other.get("expiresAt", 0)))

        self.acquired = True
        logger.info(f"Maintenance guard acquired for {self.task}")

    def refresh(self) -> None:
        """Push the expiry forward during a long task."""
        current = _read_json(self.store, LOCK_KEY)
        if not current or current.get("holder") != self.holder:
            raise MaintenanceLockHeld((current or {}).get("task", "unknown"), int((current or {}).get("expiresAt", 0)))
        current["expiresAt"] = now_ms() + self.ttl_ms
        self.store.put(LOCK_KEY, json.dumps(current))

    def release(self) -> None:
        if not self.acquired:
            return
        current = _read_json(self.store, LOCK_KEY)
        if current and current.get("holder") == self.holder:
            self.store.delete(LOCK_KEY)
            logger.info(f"Maintenance guard released by {self.task}")
        else:
            logger.warning(f"Maintenance guard of {self.task} expired and was taken over before release")
        self.acquired = False

    def __enter__(self) -> "MaintenanceLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def record_task_status(store: BaseObjectStore, task: str, status: str, **details: Any) -> Dict[str, Any]:
    """Persist the latest maintenance task outcome for Stats/Info."""
    record = {"task": task, "status": status, "updatedAt": now_ms(), **details}
    store.put(TASK_STATUS_KEY, json.dumps(record))
    return record


def load_task_status(store: BaseObjectStore) -> Optional[Dict[str, Any]]:
    return _read_json(store, TASK_STATUS_KEY)
