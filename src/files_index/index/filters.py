"""
Filter parsing and record matching shared by the Query Engine and the
Fallback Scanner.

Both paths feed id-sorted records through ``select_records`` so that an
indexed answer and a scanned answer over the same store state agree.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from files_index.index.models import FileRecord, ParsedParam, QueryFilter

logger = logging.getLogger(__name__)

DEFAULT_START = 0
DEFAULT_COUNT = 50
# count == -1 means "everything from start"
UNBOUNDED_COUNT = -1


def normalize_directory(directory: Optional[str]) -> str:
    """Return the directory as a key prefix: no leading slash, one trailing slash."""
    directory = (directory or "").strip().lstrip("/")
    while "//" in directory:
        directory = directory.replace("//", "/")
    if directory and not directory.endswith("/"):
        directory += "/"
    return directory


def parse_int_param(raw: Any, default: int, minimum: int = 0, reject_zero: bool = False) -> ParsedParam:
    """
    Parse a numeric query parameter permissively.

    Missing, non-numeric and out-of-range values are replaced by ``default``;
    the returned flag tells whether that happened.
    """
    if raw is None or raw == "":
        return ParsedParam(value=default, substituted=False)
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return ParsedParam(value=default, substituted=True)
    if value < minimum or (reject_zero and value == 0):
        return ParsedParam(value=default, substituted=True)
    return ParsedParam(value=value)


def parse_tags(raw: Optional[str]) -> List[str]:
    """Split a comma separated tag list, dropping blanks."""
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def parse_flag(raw: Optional[str]) -> bool:
    return str(raw).strip().lower() == "true" if raw is not None else False


def build_query_filter(
    search: Optional[str] = None,
    directory: Optional[str] = None,
    start: Any = None,
    count: Any = None,
    sum_only: Optional[str] = None,
    recursive: Optional[str] = None,
    channel: Optional[str] = None,
    list_type: Optional[str] = None,
    include_tags: Optional[str] = None,
    exclude_tags: Optional[str] = None,
    default_count: int = DEFAULT_COUNT,
) -> QueryFilter:
    """Build a QueryFilter from raw request parameters, substituting safe defaults."""
    parsed_start = parse_int_param(start, DEFAULT_START, minimum=0)
    parsed_count = parse_int_param(count, default_count, minimum=UNBOUNDED_COUNT, reject_zero=True)

    substituted = []
    if parsed_start.substituted:
        substituted.append("start")
    if parsed_count.substituted:
        substituted.append("count")
    if substituted:
        logger.info(f"Substituted defaults for malformed parameters: {substituted} (start={start!r}, count={count!r})")

    count_only = parsed_count.value == UNBOUNDED_COUNT and parse_flag(sum_only)

    return QueryFilter(
        search=(search or "").strip(),
        directory=normalize_directory(directory),
        start=parsed_start.value,
        count=parsed_count.value,
        channel=(channel or "").strip(),
        list_type=(list_type or "").strip(),
        include_tags=parse_tags(include_tags),
        exclude_tags=parse_tags(exclude_tags),
        include_subdir_files=parse_flag(recursive),
        count_only=count_only,
        substituted_fields=substituted,
    )


def matches_attributes(record: FileRecord, query_filter: QueryFilter) -> bool:
    """Search, tag, channel and list type checks; directory is handled separately."""
    if query_filter.search and query_filter.search.lower() not in record.id.lower():
        return False
    if query_filter.channel and record.channel != query_filter.channel:
        return False
    if query_filter.list_type and record.list_type != query_filter.list_type:
        return False
    if query_filter.include_tags or query_filter.exclude_tags:
        tags = record.tags
        if not all(tag in tags for tag in query_filter.include_tags):
            return False
        if any(tag in tags for tag in query_filter.exclude_tags):
            return False
    return True


def select_records(
    records: Iterable[FileRecord],
    query_filter: QueryFilter,
) -> Tuple[List[FileRecord], List[str], int]:
    """
    Apply a filter to id-sorted records.

    Returns the requested page, the immediate subdirectories of the filter
    directory, and the number of matching records before pagination.
    """
    prefix = normalize_directory(query_filter.directory)
    matching: List[FileRecord] = []
    directories: Set[str] = set()

    for record in records:
        if not record.id.startswith(prefix):
            continue
        if not matches_attributes(record, query_filter):
            continue
        remainder = record.id[len(prefix):]
        slash = remainder.find("/")
        if slash != -1:
            directories.add(prefix + remainder[:slash])
            if not query_filter.include_subdir_files:
                continue
        matching.append(record)

    total_count = len(matching)
    if query_filter.count_only:
        return [], [], total_count

    start = query_filter.start
    if query_filter.count == UNBOUNDED_COUNT:
        page = matching[start:]
    else:
        page = matching[start:start + query_filter.count]
    return page, sorted(directories), total_count


def derive_directories(record_ids: Iterable[str]) -> List[str]:
    """Every ancestor directory of every id, e.g. ``a/b/c.txt`` gives ``a`` and ``a/b``."""
    directories: Set[str] = set()
    for record_id in record_ids:
        parts = record_id.split("/")[:-1]
        for depth in range(1, len(parts) + 1):
            directories.add("/".join(parts[:depth]))
    directories.discard("")
    return sorted(directories)


def strip_sensitive_metadata(metadata: Optional[Dict[str, Any]], sensitive_keys: Iterable[str]) -> Dict[str, Any]:
    """Copy of the metadata without keys that must not reach clients."""
    if not isinstance(metadata, dict):
        return {}
    blocked = set(sensitive_keys)
    return {key: value for key, value in metadata.items() if key not in blocked}
