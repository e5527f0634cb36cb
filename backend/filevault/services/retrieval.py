"""Listing, serving and deleting stored files.

The files table is the source of truth for "which files belong to whom".
User.files is treated as a cache: list_by_owner_profile repairs it in place
whenever it has drifted from the table.
"""
import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator
from urllib.parse import quote

from sqlalchemy import desc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.errors import InvalidInput, NotFound, PersistenceFailure
from filevault.models.file_record import FileRecord
from filevault.services.classifier import normalize_category
from filevault.services.file_storage import FileStorageService
from filevault.services.formatting import (
    format_count,
    format_date,
    format_duration,
    format_file_size,
)
from filevault.services.metadata import decode_text, text_stats
from filevault.services.owner import find_user, is_valid_email, parse_uuid, unlink_file

logger = logging.getLogger(__name__)

DEFAULT_SERVE_TYPE = "application/octet-stream"

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".json": "application/json",
    ".xml": "application/xml",
    ".csv": "text/csv",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}

TEXT_PREVIEW_EXTENSIONS = frozenset({
    ".txt", ".md", ".json", ".xml", ".csv", ".js", ".ts", ".html", ".css", ".log",
})

# "<base>_<timestamp><ext>" -> "<base><ext>"
_TIMESTAMP_SEGMENT = re.compile(r"_\d+(\.[^.]+)$")


def content_type_for(stored_name: str) -> str:
    return CONTENT_TYPES.get(Path(stored_name).suffix.lower(), DEFAULT_SERVE_TYPE)


def display_name_for(stored_name: str) -> str:
    """Reconstruct the uploaded name by stripping the timestamp segment."""
    return _TIMESTAMP_SEGMENT.sub(r"\1", stored_name)


def content_disposition(filename: str) -> str:
    """Attachment header value that survives latin-1 header encoding.

    Non-ASCII names get an underscore-substituted fallback plus an RFC 5987
    filename* parameter carrying the UTF-8 name.
    """
    filename = re.sub(r'["\r\n]', "", filename)
    fallback = "".join(c if 32 <= ord(c) < 127 else "_" for c in filename)
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class ServedFile:
    stream: AsyncIterator[bytes]
    content_type: str
    length: int
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class FileListing:
    files: list[dict[str, Any]]
    user_email: str | None
    summary: dict[str, Any]


@dataclass
class OwnerFiles:
    user_id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    files: list[dict[str, Any]]
    repaired: bool = False


def file_view(record: FileRecord) -> dict[str, Any]:
    """Stored record plus display fields."""
    return {
        "id": str(record.id),
        "name": record.name,
        "stored_name": record.stored_name,
        "url": record.url,
        "file_type": record.file_type,
        "category": normalize_category(record.category).value,
        "size": record.size,
        "size_formatted": format_file_size(record.size),
        "upload_date": record.created_at,
        "upload_date_formatted": format_date(record.created_at),
        "duration": record.duration,
        "duration_formatted": format_duration(record.duration) if record.duration else None,
        "character_count": record.character_count,
        "character_count_formatted": (
            format_count(record.character_count) if record.character_count is not None else None
        ),
        "tags": list(record.tags or []),
        "description": record.description or "",
        "email": record.email,
        "uploaded_by": str(record.uploaded_by),
    }


def summarize(views: list[dict[str, Any]]) -> dict[str, Any]:
    total_size = sum(v["size"] for v in views)
    categories: dict[str, int] = {}
    for v in views:
        categories[v["category"]] = categories.get(v["category"], 0) + 1
    return {
        "total_files": len(views),
        "total_size": total_size,
        "total_size_formatted": format_file_size(total_size),
        "categories": categories,
        "latest_upload": views[0]["upload_date_formatted"] if views else None,
    }


def _require_email(email: str | None, required: bool) -> str | None:
    email = (email or "").strip() or None
    if email is None:
        if required:
            raise InvalidInput("User email is required")
        return None
    if not is_valid_email(email):
        raise InvalidInput("Invalid email format")
    return email


class RetrievalService:
    def __init__(self, storage: FileStorageService, api_prefix: str = "/api/v1"):
        self.storage = storage
        self.api_prefix = api_prefix.rstrip("/")

    async def list_files(
        self,
        db: AsyncSession,
        email: str | None = None,
        category: str | None = None,
        q: str | None = None,
    ) -> FileListing:
        """All files (or one owner's), newest first, with a category summary.

        Without an email every record is returned; there is no owner to
        scope by.
        """
        email = _require_email(email, required=False)

        query = select(FileRecord).order_by(desc(FileRecord.created_at), desc(FileRecord.id))
        if email:
            query = query.where(FileRecord.email == email)
        if q:
            query = query.where(FileRecord.name.ilike(_like_pattern(q), escape="\\"))
        result = await db.execute(query)
        views = [file_view(r) for r in result.scalars().all()]

        if category:
            wanted = normalize_category(category).value
            views = [v for v in views if v["category"] == wanted]

        summary = summarize(views)
        logger.info(
            f"Retrieved {len(views)} files for {email or 'all users'} "
            f"({summary['total_size_formatted']}, {summary['categories']})"
        )
        return FileListing(files=views, user_email=email, summary=summary)

    async def list_by_owner_profile(self, db: AsyncSession, email: str | None) -> OwnerFiles:
        """Resolve the owner by email and return the files linked to them."""
        email = _require_email(email, required=True)
        user = await find_user(db, email=email)
        if user is None:
            raise NotFound("User not found")

        result = await db.execute(
            select(FileRecord)
            .where(or_(FileRecord.uploaded_by == user.id, FileRecord.email == user.email))
            .order_by(desc(FileRecord.created_at), desc(FileRecord.id))
        )
        records = result.scalars().all()
        owned = {str(r.id) for r in records}
        cached = list(user.files or [])

        kept = [ref for ref in cached if ref in owned]
        missing = [str(r.id) for r in reversed(records) if str(r.id) not in kept]
        repaired = kept + missing

        owner = OwnerFiles(
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            files=[file_view(r) for r in records],
        )

        if repaired != cached:
            logger.warning(
                f"files list of {user.email} drifted: dropped "
                f"{len(cached) - len(kept)} dangling, added {len(missing)} missing"
            )
            try:
                user.files = repaired
                await db.commit()
                owner.repaired = True
            except Exception:
                logger.exception(f"Could not repair files list of {owner.email}")
                await db.rollback()
        return owner

    def serve_raw(self, stored_name: str) -> ServedFile:
        stream = self.storage.open_for_read(stored_name)
        length = self.storage.size_of(stored_name)
        content_type = content_type_for(stored_name)
        logger.info(f"Serving {stored_name} ({length} bytes, {content_type})")
        return ServedFile(
            stream=stream,
            content_type=content_type,
            length=length,
            headers={
                "Cache-Control": "public, max-age=3600",
                "Access-Control-Allow-Origin": "*",
                "Cross-Origin-Resource-Policy": "cross-origin",
            },
        )

    def serve_for_download(self, stored_name: str, display_name: str | None = None) -> ServedFile:
        stream = self.storage.open_for_read(stored_name)
        length = self.storage.size_of(stored_name)
        filename = display_name or display_name_for(stored_name)
        logger.info(f"Download of {stored_name} as {filename} ({length} bytes)")
        return ServedFile(
            stream=stream,
            content_type=DEFAULT_SERVE_TYPE,
            length=length,
            headers={
                "Content-Disposition": content_disposition(filename),
                "Cache-Control": "no-cache",
            },
        )

    async def serve_text_preview(self, stored_name: str) -> dict[str, Any]:
        """Full text plus stats for text files, otherwise a pointer to serve_raw."""
        size = self.storage.size_of(stored_name)
        modified = self.storage.modified_at(stored_name)
        ext = Path(stored_name).suffix.lower()

        if ext not in TEXT_PREVIEW_EXTENSIONS:
            return {
                "file_name": stored_name,
                "file_type": "binary",
                "message": "Binary file - use serve endpoint for direct access",
                "preview_unavailable_reason": f"Files with extension '{ext or 'none'}' cannot be previewed inline",
                "serve_url": f"{self.api_prefix}/files/serve/{stored_name}",
                "stats": {"file_size": size, "last_modified": modified, "extension": ext},
            }

        content = decode_text(await self.storage.read_bytes(stored_name))
        stats = text_stats(content)
        logger.info(
            f"Preview of {stored_name}: {stats.character_count} chars, "
            f"{stats.word_count} words, {stats.line_count} lines"
        )
        return {
            "file_name": stored_name,
            "file_type": "text",
            "message": "File content retrieved",
            "content": content,
            "stats": {
                "character_count": stats.character_count,
                "word_count": stats.word_count,
                "line_count": stats.line_count,
                "file_size": size,
                "last_modified": modified,
            },
        }

    async def delete_file(self, db: AsyncSession, file_id: str) -> dict[str, Any]:
        """Delete one record. Byte removal and owner detach are best-effort."""
        record_id = parse_uuid(file_id)
        if record_id is None:
            raise InvalidInput("Invalid file ID format")

        record = await db.get(FileRecord, record_id)
        if record is None:
            raise NotFound("File not found")

        summary = {
            "id": str(record.id),
            "name": record.name,
            "email": record.email,
        }
        stored_name = record.stored_name
        owner_id = record.uploaded_by
        owner_email = record.email

        try:
            removed = await self.storage.delete(stored_name)
            if not removed:
                logger.warning(f"Stored bytes for {record_id} were already gone: {stored_name}")
        except Exception:
            logger.exception(f"Error deleting stored bytes {stored_name}, removing record anyway")

        try:
            await db.delete(record)
            await db.commit()
        except Exception as e:
            await db.rollback()
            raise PersistenceFailure("Failed to delete file record") from e
        logger.info(f"Deleted file record {record_id} ({summary['name']})")

        await unlink_file(db, record_id, user_id=owner_id, email=owner_email)
        return summary
