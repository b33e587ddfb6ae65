"""Query Engine: filtered, paginated reads of the committed snapshot."""

import logging

from files_index.adapters.storage import BaseObjectStore
from files_index.errors import IndexUnavailable
from files_index.index.filters import select_records
from files_index.index.models import QueryFilter, QueryResult
from files_index.index.snapshot_store import load_snapshot

logger = logging.getLogger(__name__)


def read_index(store: BaseObjectStore, query_filter: QueryFilter) -> QueryResult:
    """
    Answer a listing query from the latest committed snapshot.

    Returns ``success=False`` when the snapshot is missing or unreadable; the
    caller is expected to use the fallback scanner then. Store faults are not
    caught here.
    """
    try:
        snapshot = load_snapshot(store)
    except IndexUnavailable as e:
        logger.warning(f"Index unavailable, caller should fall back to a store scan: {e}")
        return QueryResult.unavailable()

    files, directories, total_count = select_records(snapshot.sorted_records(), query_filter)

    return QueryResult(
        success=True,
        files=files,
        directories=directories,
        total_count=total_count,
        returned_count=len(files),
        index_last_updated=snapshot.last_updated,
        is_indexed=True,
    )
