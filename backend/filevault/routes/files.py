"""Files API routes."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File as FastAPIFile, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import Settings, settings
from filevault.database import get_db
from filevault.errors import InvalidInput, PayloadTooLarge
from filevault.routes.deps import get_ingestion, get_retrieval, get_settings, get_verified_identity
from filevault.schemas.file import (
    DeleteResponse,
    FileListRequest,
    FileListResponse,
    PreviewResponse,
    UploadResponse,
    UserFilesResponse,
)
from filevault.services.ingestion import IngestionService, UploadPayload, parse_tags
from filevault.services.owner import OwnerResolution, VerifiedIdentity
from filevault.services.retrieval import RetrievalService, ServedFile, file_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.API_PREFIX}/files", tags=["files"])


async def _list_params(request: Request) -> FileListRequest:
    """email/category/q from the query string, overridden by a JSON or form body."""
    params = dict(request.query_params)
    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                body = await request.json()
            except ValueError as e:
                raise InvalidInput("Malformed JSON body") from e
            if isinstance(body, dict):
                params.update({k: v for k, v in body.items() if v is not None})
        elif "form" in content_type:
            form = await request.form()
            params.update({k: v for k, v in form.items() if isinstance(v, str)})
    try:
        return FileListRequest.model_validate(params)
    except ValidationError as e:
        raise InvalidInput("Invalid request parameters") from e


def _streaming(served: ServedFile) -> StreamingResponse:
    return StreamingResponse(
        served.stream,
        media_type=served.content_type,
        headers={**served.headers, "Content-Length": str(served.length)},
    )


@router.get("/test")
async def test_route():
    """Liveness check listing the main routes."""
    return {
        "success": True,
        "message": "Backend is working!",
        "routes_available": ["/allfiles", "/upload", "/delete/{file_id}", "/user-files"],
    }


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_file(
    file: Optional[UploadFile] = FastAPIFile(None),
    email: Optional[str] = Form(None),
    user_id: Optional[str] = Form(None, alias="userId"),
    tags: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    query_user_id: Optional[str] = Query(None, alias="userId"),
    identity: Optional[VerifiedIdentity] = Depends(get_verified_identity),
    ingestion: IngestionService = Depends(get_ingestion),
    cfg: Settings = Depends(get_settings),
    db: AsyncSession = Depends(get_db),
):
    """Upload a file, derive its metadata and link it to its owner."""
    owner = OwnerResolution.resolve(
        identity=identity,
        declared_user_id=user_id or query_user_id,
        declared_email=email,
    )
    payload = None
    if file is not None and file.filename:
        # The multipart parser has already spooled the body; reject before loading it
        if file.size is not None and file.size > cfg.MAX_UPLOAD_SIZE:
            raise PayloadTooLarge(f"File exceeds the {cfg.MAX_UPLOAD_SIZE} byte upload limit")
        payload = UploadPayload(
            filename=file.filename,
            data=await file.read(),
            content_type=file.content_type,
            tags=parse_tags(tags),
            description=description,
        )
    record = await ingestion.ingest(db, payload, owner)
    return {
        "success": True,
        "message": "File uploaded successfully and metadata stored in database",
        "file": file_view(record),
    }


@router.api_route("/allfiles", methods=["GET", "POST"], response_model=FileListResponse)
async def all_files(
    request: Request,
    identity: Optional[VerifiedIdentity] = Depends(get_verified_identity),
    retrieval: RetrievalService = Depends(get_retrieval),
    db: AsyncSession = Depends(get_db),
):
    """List files, optionally for one owner email, newest first."""
    params = await _list_params(request)
    email = (identity.email if identity and identity.email else None) or params.email
    listing = await retrieval.list_files(db, email=email, category=params.category, q=params.q)
    return {
        "success": True,
        "message": f"Retrieved {len(listing.files)} files successfully",
        "count": len(listing.files),
        "user_email": listing.user_email or "all users",
        "files": listing.files,
        "summary": listing.summary,
    }


@router.api_route("/user-files", methods=["GET", "POST"], response_model=UserFilesResponse)
async def user_files(
    request: Request,
    identity: Optional[VerifiedIdentity] = Depends(get_verified_identity),
    retrieval: RetrievalService = Depends(get_retrieval),
    db: AsyncSession = Depends(get_db),
):
    """Files linked to an owner profile, looked up by email."""
    params = await _list_params(request)
    email = (identity.email if identity and identity.email else None) or params.email
    owner = await retrieval.list_by_owner_profile(db, email)
    return {
        "success": True,
        "message": f"Retrieved {len(owner.files)} files from user model",
        "count": len(owner.files),
        "user_email": owner.email,
        "user_id": str(owner.user_id),
        "files": owner.files,
        "user_data": {
            "first_name": owner.first_name,
            "last_name": owner.last_name,
            "email": owner.email,
            "total_files": len(owner.files),
        },
    }


@router.delete("/delete/{file_id}", response_model=DeleteResponse)
async def delete_file(
    file_id: str,
    retrieval: RetrievalService = Depends(get_retrieval),
    db: AsyncSession = Depends(get_db),
):
    """Delete a file record, its stored bytes and its owner link."""
    deleted = await retrieval.delete_file(db, file_id)
    return {"success": True, "message": "File deleted successfully", "deleted_file": deleted}


@router.get("/serve/{file_name}")
async def serve_file(
    file_name: str,
    retrieval: RetrievalService = Depends(get_retrieval),
):
    """Stream stored bytes with their content type."""
    return _streaming(retrieval.serve_raw(file_name))


@router.get("/content/{file_name}", response_model=PreviewResponse)
async def file_content(
    file_name: str,
    retrieval: RetrievalService = Depends(get_retrieval),
):
    """Text content and stats, or a notice pointing at /serve for binaries."""
    preview = await retrieval.serve_text_preview(file_name)
    return {"success": True, **preview}


@router.get("/download/{file_name}")
async def download_file(
    file_name: str,
    name: Optional[str] = Query(None, description="Display name for the saved file"),
    retrieval: RetrievalService = Depends(get_retrieval),
):
    """Stream stored bytes as an attachment named after the original upload."""
    return _streaming(retrieval.serve_for_download(file_name, display_name=name))
