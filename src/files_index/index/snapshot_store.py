"""
Persistence of the index snapshot inside the object store.

A snapshot version is written as chunk keys scoped by version, then committed
by replacing the single meta key. Readers resolve the meta key first and only
read chunks of that version, so they observe either the previous or the next
committed version. Chunks of other versions are removed after the commit.
"""

import json
import logging
from typing import Dict, Iterator, List, Optional

from pydantic import ValidationError

from files_index.adapters.storage import BaseObjectStore
from files_index.errors import IndexUnavailable, StoreAdapterError
from files_index.index.filters import derive_directories
from files_index.index.keys import (
    INDEX_CHUNK_PREFIX,
    INDEX_META_KEY,
    chunk_key,
    now_ms,
    parse_chunk_key,
)
from files_index.index.models import FileRecord, IndexSnapshot, SnapshotMeta

logger = logging.getLogger(__name__)


def load_meta(store: BaseObjectStore) -> Optional[SnapshotMeta]:
    """Return the committed meta record, None when no snapshot was ever committed."""
    raw = store.get(INDEX_META_KEY)
    if raw is None:
        return None
    try:
        return SnapshotMeta.model_validate_json(raw)
    except ValidationError as e:
        raise IndexUnavailable(f"Index meta record is corrupt: {e}") from e


def load_snapshot(store: BaseObjectStore) -> IndexSnapshot:
    """Read the latest committed snapshot or raise IndexUnavailable."""
    meta = load_meta(store)
    if meta is None:
        raise IndexUnavailable("No index snapshot has been committed")

    records: Dict[str, FileRecord] = {}
    for chunk_index in range(meta.chunk_count):
        key = chunk_key(meta.version, chunk_index)
        raw = store.get(key)
        if raw is None:
            raise IndexUnavailable(f"Index chunk {key} is missing")
        try:
            chunk = json.loads(raw)
            if chunk.get("version") != meta.version:
                raise IndexUnavailable(f"Index chunk {key} belongs to version {chunk.get('version')}")
            for item in chunk["records"]:
                record = FileRecord.model_validate(item)
                records[record.id] = record
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise IndexUnavailable(f"Index chunk {key} is corrupt: {e}") from e

    if len(records) != meta.total_count:
        raise IndexUnavailable(
            f"Index holds {len(records)} records but meta declares {meta.total_count}"
        )

    return IndexSnapshot(
        records=records,
        directories=meta.directories,
        last_updated=meta.last_updated,
        version=meta.version,
    )


def iter_chunk_keys(store: BaseObjectStore, page_size: int = 1000) -> Iterator[str]:
    cursor = None
    while True:
        page = store.list(prefix=INDEX_CHUNK_PREFIX, limit=page_size, cursor=cursor)
        for entry in page.keys:
            yield entry.name
        cursor = page.cursor
        if not cursor:
            break


def highest_stored_version(store: BaseObjectStore, page_size: int = 1000) -> int:
    """Largest version found among chunk keys; used when the meta record is unreadable."""
    versions = [parsed[0] for parsed in map(parse_chunk_key, iter_chunk_keys(store, page_size)) if parsed]
    return max(versions, default=0)


def commit_snapshot(
    store: BaseObjectStore,
    records: Dict[str, FileRecord],
    previous_version: int,
    previous_last_updated: int,
    chunk_size: int,
    page_size: int = 1000,
) -> IndexSnapshot:
    """
    Persist ``records`` as the next snapshot version and make it current.

    ``lastUpdated`` never moves backwards, even when the clock does.
    """
    version = previous_version + 1
    last_updated = max(now_ms(), previous_last_updated)
    record_ids = sorted(records)

    chunk_count = 0
    for offset in range(0, len(record_ids), chunk_size):
        chunk = {
            "version": version,
            "index": chunk_count,
            "records": [
                records[record_id].model_dump(by_alias=True)
                for record_id in record_ids[offset:offset + chunk_size]
            ],
        }
        store.put(chunk_key(version, chunk_count), json.dumps(chunk))
        chunk_count += 1

    directories = derive_directories(record_ids)
    meta = SnapshotMeta(
        version=version,
        last_updated=last_updated,
        total_count=len(record_ids),
        chunk_count=chunk_count,
        chunk_size=chunk_size,
        directories=directories,
    )
    # Commit point
    store.put(INDEX_META_KEY, meta.model_dump_json(by_alias=True))
    logger.info(f"Committed index version {version} with {len(record_ids)} records in {chunk_count} chunks")

    remove_stale_chunks(store, meta, page_size)

    return IndexSnapshot(
        records=records,
        directories=directories,
        last_updated=last_updated,
        version=version,
    )


def stale_chunk_keys(store: BaseObjectStore, meta: Optional[SnapshotMeta], page_size: int = 1000) -> List[str]:
    """Chunk keys that do not belong to the committed version."""
    stale = []
    for key in iter_chunk_keys(store, page_size):
        parsed = parse_chunk_key(key)
        if meta is None or parsed is None:
            stale.append(key)
            continue
        version, chunk_index = parsed
        if version != meta.version or chunk_index >= meta.chunk_count:
            stale.append(key)
    return stale


def remove_stale_chunks(store: BaseObjectStore, meta: SnapshotMeta, page_size: int = 1000) -> int:
    """Delete chunks left by earlier versions or aborted runs; failures only leave orphans."""
    try:
        stale = stale_chunk_keys(store, meta, page_size)
        for key in stale:
            store.delete(key)
    except StoreAdapterError as e:
        logger.warning(f"Could not remove stale index chunks, they stay as orphans: {e}")
        return 0
    if stale:
        logger.info(f"Removed {len(stale)} stale index chunks")
    return len(stale)
