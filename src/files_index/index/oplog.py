"""Operation log: pending add/delete mutations awaiting a merge."""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError

from files_index.adapters.storage import BaseObjectStore
from files_index.index.keys import OPERATION_PREFIX, now_ms, operation_key
from files_index.index.models import OperationKind, OperationLogEntry

logger = logging.getLogger(__name__)


def append_operation(
    store: BaseObjectStore,
    op_kind: OperationKind,
    record_id: str,
    payload: Optional[Dict[str, Any]] = None,
) -> OperationLogEntry:
    """Record a mutation of ``record_id`` for the next merge."""
    timestamp = now_ms()
    entry = OperationLogEntry(
        op_kind=op_kind,
        id=record_id,
        payload=payload,
        timestamp=timestamp,
        key=operation_key(timestamp),
    )
    store.put(entry.key, entry.model_dump_json(by_alias=True))
    logger.debug(f"Logged {op_kind.value} operation for {record_id}")
    return entry


def iter_operation_keys(store: BaseObjectStore, page_size: int = 1000) -> Iterator[str]:
    cursor = None
    while True:
        page = store.list(prefix=OPERATION_PREFIX, limit=page_size, cursor=cursor)
        for entry in page.keys:
            yield entry.name
        cursor = page.cursor
        if not cursor:
            break


def list_operations(
    store: BaseObjectStore,
    limit: Optional[int] = None,
    page_size: int = 1000,
    unreadable: Optional[List[str]] = None,
) -> List[OperationLogEntry]:
    """
    Pending entries in arrival order, at most ``limit`` of them.

    Unreadable entries are skipped with a warning; their keys are appended to
    ``unreadable`` when given so the caller can drop them.
    """
    entries: List[OperationLogEntry] = []
    for key in sorted(iter_operation_keys(store, page_size)):
        if limit is not None and len(entries) >= limit:
            break
        raw = store.get(key)
        if raw is None:
            continue
        try:
            entry = OperationLogEntry.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable operation log entry {key}: {e}")
            if unreadable is not None:
                unreadable.append(key)
            continue
        entry.key = key
        entries.append(entry)
    return entries


def count_pending_operations(store: BaseObjectStore, page_size: int = 1000) -> int:
    return sum(1 for _ in iter_operation_keys(store, page_size))


def delete_operations(store: BaseObjectStore, keys: Iterable[str]) -> int:
    deleted = 0
    for key in keys:
        store.delete(key)
        deleted += 1
    return deleted


def delete_all_operations(store: BaseObjectStore, page_size: int = 1000) -> int:
    """
    Drop every pending entry, merged or not.

    This is an administrative reset: unmerged writes are lost from the index
    until the next rebuild picks them up from the store.
    """
    keys = list(iter_operation_keys(store, page_size))
    deleted = delete_operations(store, keys)
    logger.warning(f"Deleted all {deleted} pending index operations")
    return deleted
