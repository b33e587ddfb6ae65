"""Index data model: file records, log entries, snapshots and query values."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Metadata keys the index matches on; everything else is opaque
TIMESTAMP_KEY = "TimeStamp"
FILE_TYPE_KEY = "FileType"
TAGS_KEY = "Tags"
CHANNEL_KEY = "Channel"
LIST_TYPE_KEY = "ListType"


@dataclass(frozen=True)
class IndexConfig:
    """Tuning values for index maintenance, derived once from Settings."""
    scan_page_size: int = 1000
    page_pause_seconds: float = 0.01
    index_chunk_size: int = 5000
    lock_ttl_seconds: int = 300
    max_operations_per_merge: int = 10000
    default_page_count: int = 50


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileRecord(CamelModel):
    """A file as seen by the index: its store key and its metadata."""
    id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def timestamp(self) -> Any:
        return self.metadata.get(TIMESTAMP_KEY)

    @property
    def file_type(self) -> str:
        return str(self.metadata.get(FILE_TYPE_KEY) or "")

    @property
    def channel(self) -> str:
        return str(self.metadata.get(CHANNEL_KEY) or "")

    @property
    def list_type(self) -> str:
        return str(self.metadata.get(LIST_TYPE_KEY) or "")

    @property
    def tags(self) -> Set[str]:
        raw = self.metadata.get(TAGS_KEY)
        if raw is None or raw == "":
            return set()
        if isinstance(raw, str):
            raw = raw.split(",")
        elif not isinstance(raw, (list, tuple, set)):
            # Metadata is opaque; a scalar or mapping counts as a single tag
            raw = [raw]
        return {str(tag).strip() for tag in raw if str(tag).strip()}

    def is_indexable(self) -> bool:
        """Records without a timestamp are never indexed."""
        return bool(self.timestamp)


class OperationKind(str, Enum):
    ADD = "add"
    DELETE = "delete"


class OperationLogEntry(CamelModel):
    """A pending mutation not yet folded into the snapshot."""
    op_kind: OperationKind
    id: str
    payload: Optional[Dict[str, Any]] = None
    timestamp: int = 0
    # Store key of the entry; not persisted in the value
    key: Optional[str] = Field(default=None, exclude=True)


class IndexSnapshot(CamelModel):
    """Materialized view of every indexed file record."""
    records: Dict[str, FileRecord] = Field(default_factory=dict)
    directories: List[str] = Field(default_factory=list)
    last_updated: int = 0
    version: int = 0

    @property
    def total_count(self) -> int:
        return len(self.records)

    def sorted_records(self) -> List[FileRecord]:
        return [self.records[record_id] for record_id in sorted(self.records)]


class SnapshotMeta(CamelModel):
    """Persisted commit record of a snapshot version."""
    version: int
    last_updated: int
    total_count: int
    chunk_count: int
    chunk_size: int
    directories: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class ParsedParam:
    """Result of permissive numeric parsing: the value and whether it was substituted."""
    value: int
    substituted: bool = False


class QueryFilter(CamelModel):
    """Filter, search and pagination options for a listing query."""
    search: str = ""
    directory: str = ""
    start: int = 0
    count: int = 50
    channel: str = ""
    list_type: str = ""
    include_tags: List[str] = Field(default_factory=list)
    exclude_tags: List[str] = Field(default_factory=list)
    include_subdir_files: bool = False
    count_only: bool = False
    substituted_fields: List[str] = Field(default_factory=list)


class QueryResult(CamelModel):
    """Answer of the Query Engine or of the Fallback Scanner."""
    success: bool
    files: List[FileRecord] = Field(default_factory=list)
    directories: List[str] = Field(default_factory=list)
    total_count: int = 0
    returned_count: int = 0
    index_last_updated: Optional[int] = None
    is_indexed: bool = True

    @classmethod
    def unavailable(cls) -> "QueryResult":
        return cls(success=False)


@dataclass
class MaintenanceResult:
    """Outcome of a merge or rebuild run."""
    task: str
    status: str
    version: Optional[int] = None
    processed: int = 0
    applied: int = 0
    remaining: int = 0
    details: Dict[str, Any] = field(default_factory=dict)
