import logging
import random
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from files_index.adapters.storage import BaseObjectStore
from files_index.config.settings import Settings
from files_index.dependencies import get_app_settings, get_index_config, get_store
from files_index.index.fallback import scan_store
from files_index.index.filters import UNBOUNDED_COUNT, normalize_directory
from files_index.index.models import FILE_TYPE_KEY, FileRecord, IndexConfig, QueryFilter
from files_index.index.query import read_index
from files_index.schemas import RandomFileResponse

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_CONTENT_TYPES = ["image"]


def is_directory_allowed(directory: str, allowed_dirs: List[str]) -> bool:
    """A directory is allowed when it equals, or sits below, an allowed entry; '' allows all."""
    for allowed in allowed_dirs:
        if allowed == "" or directory == allowed or directory.startswith(allowed + "/"):
            return True
    return False


def candidate_records(store: BaseObjectStore, config: IndexConfig, directory: str) -> List[FileRecord]:
    """Every file at or below ``directory``, from the index or a store scan."""
    query_filter = QueryFilter(
        directory=normalize_directory(directory),
        start=0,
        count=UNBOUNDED_COUNT,
        include_subdir_files=True,
    )
    result = read_index(store, query_filter)
    if not result.success:
        result = scan_store(store, query_filter, config)
    return result.files


@router.get("/random", response_model=None)
def get_random_file(
    request: Request,
    dir: Optional[str] = Query(None, description="Directory to pick from, subdirectories included"),
    content: Optional[str] = Query(None, description="Comma separated file type fragments, default image"),
    type: Optional[str] = Query(None, description="'url' for an absolute URL, 'img' for the file itself"),
    form: Optional[str] = Query(None, description="'text' for a plain text answer"),
    settings: Settings = Depends(get_app_settings),
    config: IndexConfig = Depends(get_index_config),
    store: BaseObjectStore = Depends(get_store),
):
    """Pick a random file of the requested type from an allowed directory."""
    if not settings.random_enabled:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "Random is disabled"})

    directory = normalize_directory(dir).rstrip("/")
    if not is_directory_allowed(directory, settings.allowed_random_dirs):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "Directory not allowed"})

    content_types = [item.strip() for item in content.split(",") if item.strip()] if content else DEFAULT_CONTENT_TYPES
    records = [
        record for record in candidate_records(store, config, directory)
        if any(content_type in record.file_type for content_type in content_types)
    ]
    if not records:
        return JSONResponse(content={})

    chosen = random.choice(records)
    random_path = f"/v1/files/{chosen.id}"
    random_url = random_path
    if type in ("url", "img"):
        random_url = str(request.base_url).rstrip("/") + random_path

    if type == "img":
        stored = store.get_with_metadata(chosen.id)
        if stored is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"File '{chosen.id}' not found"
            )
        media_type = (stored.metadata or {}).get(FILE_TYPE_KEY) or "application/octet-stream"
        return Response(content=stored.value, media_type=media_type)

    if form == "text":
        return PlainTextResponse(random_url)
    return RandomFileResponse(url=random_url)
