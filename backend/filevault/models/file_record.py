"""FileRecord model - file metadata (actual bytes live in the storage root)."""
import uuid
from sqlalchemy import String, BigInteger, Integer, JSON, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from filevault.models.base import Base, TimestampMixin


class FileRecord(Base, TimestampMixin):
    __tablename__ = "files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    stored_name: Mapped[str] = mapped_column(String(600), nullable=False, unique=True)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="other", index=True)

    # Audio/video only; estimated from size and bitrate
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Text-like files only
    character_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    tags: Mapped[list] = mapped_column(JSON, default=list)
    description: Mapped[str] = mapped_column(Text, default="")

    # Owner reference: denormalized email plus the owning user's id.
    # uploaded_by is not a foreign key; placeholder owners have no user row.
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    uploaded_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
