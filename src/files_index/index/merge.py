"""Merge Engine: fold the operation log into a new snapshot version."""

import logging
from typing import Dict, Iterable, List

from files_index.adapters.storage import BaseObjectStore
from files_index.errors import IndexUnavailable, MaintenanceTaskFailure, StoreAdapterError
from files_index.index.keys import is_reserved_key
from files_index.index.lock import MaintenanceLock
from files_index.index.models import (
    FileRecord,
    IndexConfig,
    MaintenanceResult,
    OperationKind,
    OperationLogEntry,
)
from files_index.index.oplog import count_pending_operations, delete_operations, list_operations
from files_index.index.snapshot_store import commit_snapshot, load_snapshot
from files_index.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)

MERGE_TASK = "merge"


def apply_operation(records: Dict[str, FileRecord], entry: OperationLogEntry) -> bool:
    """
    Apply one entry to ``records`` in place; returns whether it was applied.

    Both kinds are idempotent: add is an upsert, delete removes if present.
    """
    if is_reserved_key(entry.id):
        logger.warning(f"Ignoring operation on reserved key {entry.id}")
        return False

    if entry.op_kind == OperationKind.DELETE:
        records.pop(entry.id, None)
        return True

    record = FileRecord(id=entry.id, metadata=entry.payload or {})
    if not record.is_indexable():
        logger.warning(f"Ignoring add of {entry.id}: metadata has no timestamp")
        return False
    records[entry.id] = record
    return True


def drop_unreadable_operations(store: BaseObjectStore, keys: List[str]) -> int:
    """Unparseable log entries can never be applied; remove them so they stop counting as pending."""
    if keys:
        logger.warning(f"Dropping {len(keys)} unreadable operation log entries: {keys}")
    return delete_operations(store, keys)


def apply_operations(records: Dict[str, FileRecord], entries: Iterable[OperationLogEntry]) -> int:
    """Apply entries in log order; for the same id the last arrival wins."""
    return sum(1 for entry in entries if apply_operation(records, entry))


@log_execution_time
def merge_operations_to_index(store: BaseObjectStore, config: IndexConfig) -> MaintenanceResult:
    """
    Fold pending log entries into the snapshot and commit it as the next version.

    Consumed entries are deleted only after the commit. A crash in between
    leaves them in the log and the next merge applies them again, which gives
    the same records. Entries that cannot be parsed are dropped with a warning.
    """
    with MaintenanceLock(store, MERGE_TASK, config.lock_ttl_seconds):
        try:
            unreadable: List[str] = []
            entries = list_operations(
                store,
                limit=config.max_operations_per_merge,
                page_size=config.scan_page_size,
                unreadable=unreadable,
            )
            if not entries:
                dropped = drop_unreadable_operations(store, unreadable)
                logger.info("No pending operations to merge")
                return MaintenanceResult(task=MERGE_TASK, status="noop", details={"droppedOperations": dropped})

            try:
                snapshot = load_snapshot(store)
            except IndexUnavailable as e:
                raise MaintenanceTaskFailure(f"Cannot merge without a readable snapshot, rebuild required: {e}") from e

            records = dict(snapshot.records)
            applied = apply_operations(records, entries)

            committed = commit_snapshot(
                store,
                records,
                previous_version=snapshot.version,
                previous_last_updated=snapshot.last_updated,
                chunk_size=config.index_chunk_size,
                page_size=config.scan_page_size,
            )

            delete_operations(store, [entry.key for entry in entries if entry.key])
            dropped = drop_unreadable_operations(store, unreadable)
            remaining = count_pending_operations(store, config.scan_page_size)
        except StoreAdapterError as e:
            raise MaintenanceTaskFailure(f"Merge aborted by a store error: {e}") from e

    logger.info(
        f"Merged {len(entries)} operations ({applied} applied) into index version {committed.version}, "
        f"{remaining} still pending"
    )
    return MaintenanceResult(
        task=MERGE_TASK,
        status="completed",
        version=committed.version,
        processed=len(entries),
        applied=applied,
        remaining=remaining,
        details={"totalCount": committed.total_count, "droppedOperations": dropped},
    )
