####################################
# --- Request/response schemas --- #
####################################

from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from files_index.index.models import CamelModel


class ListedFile(CamelModel):
    """A file entry of a listing response."""
    name: str = Field(
        description="Store key of the file.",
        json_schema_extra={"example": "docs/report.pdf"},
    )
    metadata: Dict[str, Any] = Field(default_factory=dict, description="File metadata without sensitive fields.")


class ListFilesResponse(CamelModel):
    """Response model for `GET /v1/files`."""
    files: List[ListedFile]
    directories: List[str]
    total_count: int = Field(description="Matching files before pagination.")
    returned_count: int = Field(description="Files in this page.")
    index_last_updated: Optional[int] = Field(description="Freshness of the answer in epoch milliseconds.")
    is_indexed_response: bool = Field(description="False when the answer came from a store scan.")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "files": [
                    {
                        "name": "docs/report.pdf",
                        "metadata": {"TimeStamp": 1704067200000, "FileType": "application/pdf", "Tags": ["q1"]},
                    }
                ],
                "directories": ["docs/archive"],
                "totalCount": 1,
                "returnedCount": 1,
                "indexLastUpdated": 1704067200000,
                "isIndexedResponse": True,
            }
        }
    )


class CountFilesResponse(CamelModel):
    """Response model for `GET /v1/files?count=-1&sum=true`."""
    sum: int = Field(description="Number of matching files.")
    index_last_updated: Optional[int]
    is_indexed_response: bool


class TaskAcceptedResponse(CamelModel):
    """Acknowledgment of a maintenance action started in the background."""
    message: str
    action: str
    task_id: str


class PutFileResponse(CamelModel):
    """Response model for `PUT /v1/files/:file_path`."""
    file_path: str = Field(
        description="The path of the file.",
        json_schema_extra={"example": "docs/report.pdf"},
    )
    message: str = Field(description="A message about the operation.")


class DeleteFileResponse(CamelModel):
    """Response model for `DELETE /v1/files/:file_path`."""
    message: str


class RandomFileResponse(CamelModel):
    """Response model for `GET /v1/random`."""
    url: str
