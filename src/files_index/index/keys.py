"""Reserved key names used by the index inside the object store."""

import re
import threading
import time
import uuid
from typing import Optional, Tuple

# Internal management records (snapshot, operation log, guard, task status)
MANAGEMENT_PREFIX = "manage@"
# Segments of chunked uploads
CHUNK_SEGMENT_PREFIX = "chunk_"

RESERVED_PREFIXES = (MANAGEMENT_PREFIX, CHUNK_SEGMENT_PREFIX)

INDEX_PREFIX = f"{MANAGEMENT_PREFIX}index@"
INDEX_META_KEY = f"{INDEX_PREFIX}meta"
INDEX_CHUNK_PREFIX = f"{INDEX_PREFIX}chunk_"
OPERATION_PREFIX = f"{INDEX_PREFIX}operation_"
LOCK_KEY = f"{INDEX_PREFIX}lock"
TASK_STATUS_KEY = f"{INDEX_PREFIX}task_status"

_CHUNK_KEY_RE = re.compile(r"^" + re.escape(INDEX_CHUNK_PREFIX) + r"(\d+)_(\d+)$")


def is_reserved_key(key: str) -> bool:
    return key.startswith(RESERVED_PREFIXES)


def chunk_key(version: int, chunk_index: int) -> str:
    return f"{INDEX_CHUNK_PREFIX}{version}_{chunk_index}"


def parse_chunk_key(key: str) -> Optional[Tuple[int, int]]:
    """Return (version, chunk_index) for an index chunk key, else None."""
    match = _CHUNK_KEY_RE.match(key)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


class _ArrivalClock:
    """Hands out strictly increasing (ms, seq) pairs within the process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last_ms = 0
        self._seq = 0

    def next(self, timestamp_ms: int) -> Tuple[int, int]:
        with self._lock:
            if timestamp_ms > self._last_ms:
                self._last_ms, self._seq = timestamp_ms, 0
            else:
                # Same millisecond, or the clock stepped back
                self._seq += 1
            return self._last_ms, self._seq


_arrival_clock = _ArrivalClock()


def operation_key(timestamp_ms: Optional[int] = None) -> str:
    """
    Key for a new operation log entry.

    The zero padded arrival stamp and sequence make lexicographic key order
    equal to arrival order within a process; the nonce keeps writers in
    different processes apart.
    """
    if timestamp_ms is None:
        timestamp_ms = now_ms()
    stamp, seq = _arrival_clock.next(timestamp_ms)
    return f"{OPERATION_PREFIX}{stamp:015d}_{seq:06d}_{uuid.uuid4().hex[:12]}"


def now_ms() -> int:
    return int(time.time() * 1000)
