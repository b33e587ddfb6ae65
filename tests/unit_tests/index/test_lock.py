import json

import pytest

from files_index.errors import MaintenanceLockHeld
from files_index.index.keys import LOCK_KEY, now_ms
from files_index.index.lock import (
    MaintenanceLock,
    get_lock_state,
    load_task_status,
    record_task_status,
)


def test__lock__acquire_and_release(local_store):
    with MaintenanceLock(local_store, "merge", ttl_seconds=30) as lock:
        state = get_lock_state(local_store)
        assert state["holder"] == lock.holder
        assert state["task"] == "merge"
        assert state["expiresAt"] > now_ms()

    assert get_lock_state(local_store) is None
    assert local_store.get(LOCK_KEY) is None


def test__lock__second_holder_is_refused(local_store):
    with MaintenanceLock(local_store, "rebuild", ttl_seconds=30):
        with pytest.raises(MaintenanceLockHeld) as exc_info:
            MaintenanceLock(local_store, "merge", ttl_seconds=30).acquire()

    assert exc_info.value.task == "rebuild"


def test__lock__expired_guard_can_be_taken_over(local_store):
    local_store.put(LOCK_KEY, json.dumps({
        "holder": "crashed",
        "task": "rebuild",
        "acquiredAt": now_ms() - 10_000,
        "expiresAt": now_ms() - 1,
    }))
    assert get_lock_state(local_store) is None

    lock = MaintenanceLock(local_store, "merge", ttl_seconds=30)
    lock.acquire()

    assert get_lock_state(local_store)["holder"] == lock.holder
    lock.release()


def test__lock__refresh_extends_expiry(local_store):
    with MaintenanceLock(local_store, "rebuild", ttl_seconds=30) as lock:
        first = get_lock_state(local_store)["expiresAt"]
        lock.refresh()
        assert get_lock_state(local_store)["expiresAt"] >= first


def test__lock__refresh_fails_after_takeover(local_store):
    lock = MaintenanceLock(local_store, "rebuild", ttl_seconds=30)
    lock.acquire()
    local_store.put(LOCK_KEY, json.dumps({"holder": "other", "task": "merge", "expiresAt": now_ms() + 30_000}))

    with pytest.raises(MaintenanceLockHeld):
        lock.refresh()

    # Release leaves the new holder in place
    lock.release()
    assert get_lock_state(local_store)["holder"] == "other"


def test__task_status_round_trip(local_store):
    assert load_task_status(local_store) is None

    record_task_status(local_store, "merge-operations", "completed", taskId="abc", processed=3)

    status = load_task_status(local_store)
    assert status["task"] == "merge-operations"
    assert status["status"] == "completed"
    assert status["processed"] == 3
