import logging
import posixpath
from typing import Optional, Union

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Path,
    Query,
    Response,
    UploadFile,
    status
)
from fastapi.responses import JSONResponse

from files_index.adapters.storage import BaseObjectStore
from files_index.config.settings import Settings
from files_index.dependencies import (
    get_app_settings,
    get_index_config,
    get_maintenance_runner,
    get_store,
)
from files_index.index.fallback import scan_store
from files_index.index.filters import build_query_filter, parse_tags, strip_sensitive_metadata
from files_index.index.info import get_index_info, get_index_storage_stats
from files_index.index.keys import is_reserved_key, now_ms
from files_index.index.models import (
    CHANNEL_KEY,
    FILE_TYPE_KEY,
    LIST_TYPE_KEY,
    TAGS_KEY,
    TIMESTAMP_KEY,
    IndexConfig,
    OperationKind,
)
from files_index.index.oplog import append_operation
from files_index.index.query import read_index
from files_index.schemas import (
    CountFilesResponse,
    DeleteFileResponse,
    ListedFile,
    ListFilesResponse,
    PutFileResponse,
    TaskAcceptedResponse,
)
from files_index.tasks import (
    DELETE_OPERATIONS_ACTION,
    MAINTENANCE_ACTIONS,
    MERGE_ACTION,
    REBUILD_ACTION,
    MaintenanceRunner,
)

logger = logging.getLogger(__name__)

router = APIRouter()

LIST_ACTION = "list"
STORAGE_STATS_ACTION = "index-storage-stats"
INFO_ACTION = "info"

ACTION_MESSAGES = {
    REBUILD_ACTION: "Index rebuild started",
    MERGE_ACTION: "Operations merge into index started",
    DELETE_OPERATIONS_ACTION: "Deletion of all pending operations started",
}


@router.get("/files", response_model=None)
def get_files(
    action: str = Query(LIST_ACTION, description="list, rebuild, merge-operations, delete-operations, index-storage-stats or info"),
    search: Optional[str] = Query(None, description="Case-insensitive substring of the file path"),
    dir: Optional[str] = Query(None, description="Directory to list"),
    start: Optional[str] = Query(None, description="Zero-based offset"),
    count: Optional[str] = Query(None, description="Page size; -1 for everything"),
    sum_only: Optional[str] = Query(None, alias="sum", description="With count=-1, return only the total"),
    recursive: Optional[str] = Query(None, description="Include files of subdirectories"),
    channel: Optional[str] = Query(None),
    list_type: Optional[str] = Query(None, alias="listType"),
    include_tags: Optional[str] = Query(None, alias="includeTags", description="Comma separated tags a file must carry"),
    exclude_tags: Optional[str] = Query(None, alias="excludeTags", description="Comma separated tags a file must not carry"),
    settings: Settings = Depends(get_app_settings),
    config: IndexConfig = Depends(get_index_config),
    store: BaseObjectStore = Depends(get_store),
    runner: MaintenanceRunner = Depends(get_maintenance_runner),
) -> Union[ListFilesResponse, CountFilesResponse, JSONResponse, dict]:
    """
    List files from the index, or run an index action.

    Listings are answered from the index snapshot; when it cannot be used the
    store is scanned instead and `isIndexedResponse` is false. Maintenance
    actions only start a background task; poll `action=info` for the outcome.
    """
    action = (action or LIST_ACTION).strip()

    if action in MAINTENANCE_ACTIONS:
        handle = runner.submit(action)
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=TaskAcceptedResponse(
                message=ACTION_MESSAGES[action],
                action=action,
                task_id=handle.task_id,
            ).model_dump(by_alias=True),
        )

    if action == STORAGE_STATS_ACTION:
        return get_index_storage_stats(store, config)

    if action == INFO_ACTION:
        return get_index_info(store, config)

    if action not in ("", LIST_ACTION):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown action '{action}'"
        )

    query_filter = build_query_filter(
        search=search,
        directory=dir,
        start=start,
        count=count,
        sum_only=sum_only,
        recursive=recursive,
        channel=channel,
        list_type=list_type,
        include_tags=include_tags,
        exclude_tags=exclude_tags,
        default_count=settings.default_page_count,
    )

    result = read_index(store, query_filter)
    if not result.success:
        result = scan_store(store, query_filter, config)

    if query_filter.count_only:
        return CountFilesResponse(
            sum=result.total_count,
            index_last_updated=result.index_last_updated,
            is_indexed_response=result.is_indexed,
        )

    return ListFilesResponse(
        files=[
            ListedFile(
                name=record.id,
                metadata=strip_sensitive_metadata(record.metadata, settings.sensitive_metadata_keys),
            )
            for record in result.files
        ],
        directories=result.directories,
        total_count=result.total_count,
        returned_count=result.returned_count,
        index_last_updated=result.index_last_updated,
        is_indexed_response=result.is_indexed,
    )


def _check_file_path(file_path: str) -> str:
    file_path = file_path.lstrip("/")
    if not file_path or is_reserved_key(file_path):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"'{file_path}' is not a valid file path"
        )
    return file_path


@router.put("/files/{file_path:path}", response_model=PutFileResponse)
async def upload_file(
    response: Response,
    file_content: UploadFile,
    file_path: str = Path(..., description="The path for the file"),
    tags: Optional[str] = Query(None, description="Comma separated tags"),
    channel: Optional[str] = Query(None, description="Storage channel the file came through"),
    list_type: Optional[str] = Query(None, alias="listType", description="List classification of the file"),
    store: BaseObjectStore = Depends(get_store),
) -> PutFileResponse:
    """
    Upload a file and log it for the next index merge.

    The listing only shows the file once `merge-operations` (or a rebuild)
    has run.
    """
    file_path = _check_file_path(file_path)

    if store.exists(file_path):
        message = f"Existing file updated at path: /{file_path}"
        response.status_code = status.HTTP_200_OK
    else:
        message = f"New file uploaded at path: /{file_path}"
        response.status_code = status.HTTP_201_CREATED

    file_bytes = await file_content.read()
    metadata = {
        TIMESTAMP_KEY: now_ms(),
        "FileName": file_content.filename or posixpath.basename(file_path),
        FILE_TYPE_KEY: file_content.content_type or "application/octet-stream",
        "FileSize": len(file_bytes),
        TAGS_KEY: parse_tags(tags),
        CHANNEL_KEY: channel or "",
        LIST_TYPE_KEY: list_type or "None",
    }

    store.put(file_path, file_bytes, metadata)
    append_operation(store, OperationKind.ADD, file_path, metadata)
    logger.info(f"Stored {file_path} ({len(file_bytes)} bytes)")

    return PutFileResponse(file_path=file_path, message=message)


@router.get("/files/{file_path:path}")
def get_file(
    file_path: str = Path(..., description="The key/path of the file to retrieve"),
    store: BaseObjectStore = Depends(get_store),
) -> Response:
    """Download a file from storage."""
    file_path = _check_file_path(file_path)
    stored = store.get_with_metadata(file_path)
    if stored is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File '{file_path}' not found"
        )

    metadata = stored.metadata or {}
    return Response(
        content=stored.value,
        media_type=metadata.get(FILE_TYPE_KEY) or "application/octet-stream",
        headers={
            "Content-Disposition": f"attachment; filename={posixpath.basename(file_path)}"
        },
    )


@router.delete("/files/{file_path:path}", response_model=DeleteFileResponse)
def delete_file(
    file_path: str = Path(..., description="The key/path of the file to delete"),
    store: BaseObjectStore = Depends(get_store),
) -> DeleteFileResponse:
    """Delete a file from storage and log the removal for the next index merge."""
    file_path = _check_file_path(file_path)
    if not store.exists(file_path):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File '{file_path}' not found"
        )

    store.delete(file_path)
    append_operation(store, OperationKind.DELETE, file_path)

    return DeleteFileResponse(message=f"File '{file_path}' deleted successfully")
