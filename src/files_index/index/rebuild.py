"""Rebuild Engine: reconstruct the snapshot from a full store scan."""

import logging
from typing import Callable, Dict, Optional

from files_index.adapters.storage import BaseObjectStore
from files_index.errors import IndexUnavailable, MaintenanceTaskFailure, StoreAdapterError
from files_index.index.lock import MaintenanceLock
from files_index.index.models import FileRecord, IndexConfig, MaintenanceResult
from files_index.index.oplog import delete_operations, iter_operation_keys
from files_index.index.scan import iter_record_pages
from files_index.index.snapshot_store import commit_snapshot, highest_stored_version, load_meta
from files_index.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)

REBUILD_TASK = "rebuild"

ProgressCallback = Callable[[int], None]


def log_progress(processed: int) -> None:
    logger.info(f"Rebuilt {processed} files...")


def _previous_commit(store: BaseObjectStore, page_size: int):
    """Version and lastUpdated of the current commit, tolerating a corrupt meta record."""
    try:
        meta = load_meta(store)
    except IndexUnavailable as e:
        logger.warning(f"Existing index meta is unreadable, rebuilding past it: {e}")
        return highest_stored_version(store, page_size), 0
    if meta is None:
        return highest_stored_version(store, page_size), 0
    return meta.version, meta.last_updated


@log_execution_time
def rebuild_index(
    store: BaseObjectStore,
    config: IndexConfig,
    progress: Optional[ProgressCallback] = None,
) -> MaintenanceResult:
    """
    Scan every record of the store into a staging snapshot and swap it in.

    Nothing is visible to readers until the final commit; a failure before it
    leaves the previous snapshot in place. Log entries that existed when the
    scan started are dropped after the commit since the scan already saw their
    effect; entries written during the scan stay for the next merge.
    """
    progress = progress or log_progress

    with MaintenanceLock(store, REBUILD_TASK, config.lock_ttl_seconds) as lock:
        try:
            pending_keys = list(iter_operation_keys(store, config.scan_page_size))
            previous_version, previous_last_updated = _previous_commit(store, config.scan_page_size)

            staging: Dict[str, FileRecord] = {}
            for records in iter_record_pages(
                store,
                prefix="",
                page_size=config.scan_page_size,
                pause_seconds=config.page_pause_seconds,
            ):
                for record in records:
                    staging[record.id] = record
                progress(len(staging))
                lock.refresh()

            committed = commit_snapshot(
                store,
                staging,
                previous_version=previous_version,
                previous_last_updated=previous_last_updated,
                chunk_size=config.index_chunk_size,
                page_size=config.scan_page_size,
            )
            cleared = delete_operations(store, pending_keys)
        except StoreAdapterError as e:
            raise MaintenanceTaskFailure(f"Rebuild aborted by a store error: {e}") from e

    logger.info(
        f"Rebuilt index version {committed.version} with {committed.total_count} records, "
        f"cleared {cleared} operations observed by the scan"
    )
    return MaintenanceResult(
        task=REBUILD_TASK,
        status="completed",
        version=committed.version,
        processed=committed.total_count,
        details={"clearedOperations": cleared, "directoryCount": len(committed.directories)},
    )
