"""Shared Pydantic schemas."""
from filevault.schemas.base import CamelORMModel


class ApiResponse(CamelORMModel):
    """Envelope every endpoint answers with."""
    success: bool = True
    message: str = ""
