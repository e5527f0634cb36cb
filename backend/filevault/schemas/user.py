"""User (owner profile) request/response schemas."""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import field_validator
from filevault.schemas.base import CamelModel, CamelORMModel
from filevault.schemas.common import ApiResponse


class UserCreate(CamelModel):
    first_name: str
    last_name: str
    email: str
    image: Optional[str] = None

    @field_validator("first_name", "last_name", "email", mode="before")
    @classmethod
    def strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class UserOut(CamelORMModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    image: str
    files: list[str] = []
    created_at: datetime

    @field_validator("files", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v if v is not None else []


class UserResponse(ApiResponse):
    user: UserOut
