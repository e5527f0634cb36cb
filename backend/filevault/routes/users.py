"""Owner profile routes. Credentials and sessions live in the auth layer."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.config import settings
from filevault.database import get_db
from filevault.errors import Conflict, InvalidInput, NotFound
from filevault.models.user import DEFAULT_AVATAR, User
from filevault.schemas.user import UserCreate, UserResponse
from filevault.services.owner import find_user, is_valid_email

router = APIRouter(prefix=f"{settings.API_PREFIX}/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register an owner profile."""
    if not body.first_name or not body.last_name:
        raise InvalidInput("All fields are required")
    if not is_valid_email(body.email):
        raise InvalidInput("Invalid email format")
    if await find_user(db, email=body.email):
        raise Conflict("User already exists")

    user = User(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        image=body.image or DEFAULT_AVATAR,
        files=[],
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise Conflict("User already exists") from e
    await db.refresh(user)
    return {"success": True, "message": "User registered successfully", "user": user}


@router.get("/by-email", response_model=UserResponse)
async def get_user_by_email(
    email: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Look up an owner profile by email."""
    if not is_valid_email(email):
        raise InvalidInput("Invalid email format")
    user = await find_user(db, email=email)
    if not user:
        raise NotFound("User not found")
    return {"success": True, "message": "User found", "user": user}
