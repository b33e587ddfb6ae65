"""Stats/Info reporters for index footprint and freshness."""

import json
import logging
from typing import Any, Dict, List, Optional

from files_index.adapters.storage import BaseObjectStore
from files_index.errors import IndexUnavailable
from files_index.index.keys import INDEX_META_KEY, chunk_key
from files_index.index.lock import get_lock_state, load_task_status
from files_index.index.models import IndexConfig
from files_index.index.oplog import count_pending_operations
from files_index.index.snapshot_store import load_meta, stale_chunk_keys

logger = logging.getLogger(__name__)


def _chunk_record_count(raw: Optional[bytes]) -> int:
    if raw is None:
        return 0
    try:
        return len(json.loads(raw).get("records", []))
    except (ValueError, AttributeError):
        logger.warning("Index chunk is unreadable, reporting zero records")
        return 0


def get_index_info(store: BaseObjectStore, config: IndexConfig) -> Dict[str, Any]:
    """Freshness, size and backlog of the index; used to decide when to merge or rebuild."""
    pending = count_pending_operations(store, config.scan_page_size)
    info: Dict[str, Any] = {
        "indexAvailable": False,
        "lastUpdated": None,
        "totalCount": 0,
        "version": None,
        "directoryCount": 0,
        "pendingOperations": pending,
        "maintenanceLock": get_lock_state(store),
        "lastTask": load_task_status(store),
    }

    try:
        meta = load_meta(store)
    except IndexUnavailable as e:
        info["error"] = str(e)
        return info

    if meta is not None:
        info.update(
            indexAvailable=True,
            lastUpdated=meta.last_updated,
            totalCount=meta.total_count,
            version=meta.version,
            directoryCount=len(meta.directories),
        )
    return info


def get_index_storage_stats(store: BaseObjectStore, config: IndexConfig) -> Dict[str, Any]:
    """Physical footprint of the persisted snapshot: meta key plus its chunks."""
    raw_meta = store.get(INDEX_META_KEY)
    stats: Dict[str, Any] = {
        "metaKey": INDEX_META_KEY,
        "metaSizeBytes": len(raw_meta) if raw_meta is not None else 0,
        "version": None,
        "chunkCount": 0,
        "chunkSize": None,
        "chunks": [],
        "totalRecords": 0,
        "totalSizeBytes": len(raw_meta) if raw_meta is not None else 0,
        "orphanChunks": [],
    }

    try:
        meta = load_meta(store)
    except IndexUnavailable as e:
        stats["error"] = str(e)
        meta = None

    if meta is not None:
        chunks: List[Dict[str, Any]] = []
        for chunk_index in range(meta.chunk_count):
            key = chunk_key(meta.version, chunk_index)
            raw = store.get(key)
            chunks.append({
                "key": key,
                "present": raw is not None,
                "recordCount": _chunk_record_count(raw),
                "sizeBytes": len(raw) if raw is not None else 0,
            })
        stats.update(
            version=meta.version,
            chunkCount=meta.chunk_count,
            chunkSize=meta.chunk_size,
            chunks=chunks,
            totalRecords=meta.total_count,
            totalSizeBytes=stats["totalSizeBytes"] + sum(chunk["sizeBytes"] for chunk in chunks),
        )

    stats["orphanChunks"] = stale_chunk_keys(store, meta, config.scan_page_size)
    return stats
