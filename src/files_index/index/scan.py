"""Cursor-paginated scan of file records in the object store."""

import logging
import time
from typing import Iterator, List

from files_index.adapters.storage import BaseObjectStore
from files_index.index.keys import is_reserved_key
from files_index.index.models import FileRecord

logger = logging.getLogger(__name__)


def iter_record_pages(
    store: BaseObjectStore,
    prefix: str = "",
    page_size: int = 1000,
    pause_seconds: float = 0.0,
) -> Iterator[List[FileRecord]]:
    """
    Yield the indexable file records of each listing page under ``prefix``.

    Reserved keys and records without a timestamp are skipped. Between pages
    the scan sleeps briefly so long scans do not monopolize the worker.
    """
    cursor = None
    while True:
        page = store.list(prefix=prefix, limit=page_size, cursor=cursor)
        records = []
        for entry in page.keys:
            if is_reserved_key(entry.name):
                continue
            if not isinstance(entry.metadata, dict):
                continue
            record = FileRecord(id=entry.name, metadata=entry.metadata)
            if record.is_indexable():
                records.append(record)
        yield records

        cursor = page.cursor
        if not cursor:
            break
        if pause_seconds:
            time.sleep(pause_seconds)
