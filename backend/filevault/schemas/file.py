"""File request/response schemas."""
from datetime import datetime
from typing import Optional
from pydantic import field_validator
from filevault.schemas.base import CamelModel, CamelORMModel
from filevault.schemas.common import ApiResponse


class FileListRequest(CamelModel):
    """JSON body accepted by POST /allfiles and /user-files."""
    email: Optional[str] = None
    category: Optional[str] = None
    q: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def first_if_list(cls, v):
        # Some form encoders send repeated fields as a list
        if isinstance(v, list):
            return v[0] if v else None
        return v


class FileView(CamelORMModel):
    id: str
    name: str
    stored_name: str
    url: str
    file_type: str
    category: str
    size: int
    size_formatted: str
    upload_date: datetime
    upload_date_formatted: Optional[str] = None
    duration: Optional[int] = None
    duration_formatted: Optional[str] = None
    character_count: Optional[int] = None
    character_count_formatted: Optional[str] = None
    tags: list[str] = []
    description: str = ""
    email: str
    uploaded_by: str


class UploadResponse(ApiResponse):
    file: FileView


class FileSummary(CamelORMModel):
    total_files: int
    total_size: int
    total_size_formatted: str
    categories: dict[str, int] = {}
    latest_upload: Optional[str] = None


class FileListResponse(ApiResponse):
    count: int
    user_email: str
    files: list[FileView]
    summary: FileSummary


class OwnerData(CamelORMModel):
    first_name: str
    last_name: str
    email: str
    total_files: int


class UserFilesResponse(ApiResponse):
    count: int
    user_email: str
    user_id: str
    files: list[FileView]
    user_data: OwnerData


class DeletedFile(CamelORMModel):
    id: str
    name: str
    email: Optional[str] = None


class DeleteResponse(ApiResponse):
    deleted_file: DeletedFile


class PreviewStats(CamelORMModel):
    file_size: int
    last_modified: datetime
    character_count: Optional[int] = None
    word_count: Optional[int] = None
    line_count: Optional[int] = None
    extension: Optional[str] = None


class PreviewResponse(ApiResponse):
    file_name: str
    file_type: str
    content: Optional[str] = None
    serve_url: Optional[str] = None
    preview_unavailable_reason: Optional[str] = None
    stats: PreviewStats
