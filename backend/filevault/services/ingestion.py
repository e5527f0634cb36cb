"""Upload ingestion: store, classify, extract, persist, link, notify.

Steps run strictly in that order. Storage and persistence failures abort the
upload. Everything after the record is committed is best-effort. A failed
persist leaves the stored bytes behind; nothing tries to clean them up.
"""
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from filevault.errors import InvalidInput, PayloadTooLarge, PersistenceFailure
from filevault.models.file_record import FileRecord
from filevault.services.classifier import classify
from filevault.services.file_storage import FileStorageService
from filevault.services.metadata import extract_metadata
from filevault.services.notifier import FileUploaded, OwnerNotifier, dispatch
from filevault.services.owner import (
    UNKNOWN_OWNER_EMAIL,
    OwnerResolution,
    find_user,
    link_file,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def parse_tags(raw) -> list[str]:
    """Accept 'a, b' or ['a', 'b']; trim and drop empties."""
    if not raw:
        return []
    items = raw if isinstance(raw, (list, tuple)) else str(raw).split(",")
    tags = []
    for item in items:
        for part in str(item).split(","):
            part = part.strip()
            if part:
                tags.append(part)
    return tags


@dataclass
class UploadPayload:
    filename: str
    data: bytes
    content_type: str | None = None
    tags: list[str] = field(default_factory=list)
    description: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


class IngestionService:
    def __init__(
        self,
        storage: FileStorageService,
        notifier: OwnerNotifier | None = None,
        max_upload_size: int = 52428800,
        allow_anonymous: bool = False,
    ):
        self.storage = storage
        self.notifier = notifier
        self.max_upload_size = max_upload_size
        self.allow_anonymous = allow_anonymous

    def _validate(self, upload: UploadPayload | None, owner: OwnerResolution) -> None:
        if upload is None or not (upload.filename or "").strip():
            raise InvalidInput("No file uploaded")
        if upload.size > self.max_upload_size:
            raise PayloadTooLarge(
                f"File exceeds the {self.max_upload_size} byte upload limit"
            )
        if owner.is_anonymous and not self.allow_anonymous:
            raise InvalidInput("An owner email or user id is required")

    async def _owner_reference(
        self, db: AsyncSession, owner: OwnerResolution
    ) -> tuple[uuid.UUID, str, bool]:
        """Return (uploaded_by, email, resolved_to_user)."""
        user = None
        if not owner.is_anonymous:
            try:
                user = await find_user(db, user_id=owner.user_id, email=owner.email)
            except Exception:
                logger.warning("Owner lookup failed, continuing with declared values", exc_info=True)
                await db.rollback()
        if user is not None:
            return user.id, owner.email or user.email, True
        uploaded_by = owner.user_id or uuid.uuid4()
        email = owner.email or UNKNOWN_OWNER_EMAIL
        logger.warning(
            f"Owner not registered (source={owner.source.value}); "
            f"recording uploaded_by={uploaded_by}, email={email}"
        )
        return uploaded_by, email, False

    async def ingest(
        self,
        db: AsyncSession,
        upload: UploadPayload | None,
        owner: OwnerResolution,
    ) -> FileRecord:
        self._validate(upload, owner)
        uploaded_by, email, resolved = await self._owner_reference(db, owner)

        stored_name = await self.storage.store(upload.data, upload.filename)
        content_type = upload.content_type or DEFAULT_CONTENT_TYPE
        category = classify(content_type, upload.filename)
        meta = await extract_metadata(
            category,
            self.storage,
            stored_name,
            upload.size,
            mime_type=content_type,
            filename=upload.filename,
        )

        record = FileRecord(
            name=upload.filename,
            stored_name=stored_name,
            url=self.storage.resolve_url(stored_name),
            file_type=content_type,
            size=upload.size,
            category=category.value,
            duration=meta.duration,
            character_count=meta.character_count,
            tags=list(upload.tags),
            description=upload.description or f"{category.value} file uploaded - {upload.filename}",
            email=email,
            uploaded_by=uploaded_by,
        )
        try:
            db.add(record)
            await db.commit()
            await db.refresh(record)
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to persist record for {stored_name}, stored bytes are orphaned: {e}")
            raise PersistenceFailure("Failed to save file record") from e

        logger.info(
            f"Stored file record {record.id}: {record.name} ({record.file_type}, "
            f"{record.size} bytes, category={record.category}) for {record.email}"
        )

        linked = await link_file(
            db,
            record.id,
            user_id=uploaded_by if resolved else owner.user_id,
            email=email,
        )
        if not linked:
            # A failed link rolls the session back, which expires the record
            await db.refresh(record)

        if email != UNKNOWN_OWNER_EMAIL:
            dispatch(
                self.notifier,
                FileUploaded(file_id=str(record.id), name=record.name, url=record.url, email=email),
            )
        return record
