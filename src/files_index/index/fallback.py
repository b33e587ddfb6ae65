"""Fallback Scanner: answer a listing query straight from the store."""

import logging
from typing import List

from files_index.adapters.storage import BaseObjectStore
from files_index.index.filters import normalize_directory, select_records
from files_index.index.keys import now_ms
from files_index.index.models import FileRecord, IndexConfig, QueryFilter, QueryResult
from files_index.index.scan import iter_record_pages

logger = logging.getLogger(__name__)


def scan_store(store: BaseObjectStore, query_filter: QueryFilter, config: IndexConfig) -> QueryResult:
    """
    Exhaustive scan used when the index cannot be trusted.

    Applies the same record filtering, ordering and pagination as the Query
    Engine, but marks the answer as not indexed and stamps it with the current
    time.
    """
    prefix = normalize_directory(query_filter.directory)
    records: List[FileRecord] = []
    for page in iter_record_pages(
        store,
        prefix=prefix,
        page_size=config.scan_page_size,
        pause_seconds=config.page_pause_seconds,
    ):
        records.extend(page)

    records.sort(key=lambda record: record.id)
    files, directories, total_count = select_records(records, query_filter)
    logger.info(f"Fallback scan of '{prefix}' matched {total_count} of {len(records)} records")

    return QueryResult(
        success=True,
        files=files,
        directories=directories,
        total_count=total_count,
        returned_count=len(files),
        index_last_updated=now_ms(),
        is_indexed=False,
    )
