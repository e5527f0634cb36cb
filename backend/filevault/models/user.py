"""User model - owner profile with its linked file ids."""
import uuid
from sqlalchemy import String, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from filevault.models.base import Base, TimestampMixin

DEFAULT_AVATAR = "https://placehold.co/50x50"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    image: Mapped[str] = mapped_column(String(1000), default=DEFAULT_AVATAR)

    # FileRecord ids (as strings) this user has been linked to, in link order.
    # Maintained on upload/delete; the files table stays authoritative.
    files: Mapped[list] = mapped_column(JSON, default=list)
