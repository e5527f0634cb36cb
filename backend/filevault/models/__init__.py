"""Import all models so SQLAlchemy metadata knows about them."""
from filevault.models.base import Base
from filevault.models.file_record import FileRecord
from filevault.models.user import User

__all__ = ["Base", "FileRecord", "User"]
