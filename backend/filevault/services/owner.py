"""Owner resolution and the user's embedded file-id list.

An OwnerResolution is built once per request from, in rank order: the
verified identity supplied by the auth layer, a client-declared user id, and
a client-declared email. Services receive it as a parameter and never look at
the request themselves.

User.files is a cache over the files table. Linking and unlinking here are
best-effort: failures are logged and reported as False, never raised.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from filevault.errors import InvalidInput
from filevault.models.user import User

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UNKNOWN_OWNER_EMAIL = "unknown@example.com"


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def parse_uuid(value) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class VerifiedIdentity:
    """What the authentication layer vouches for."""
    user_id: uuid.UUID | None = None
    email: str | None = None


class OwnerSource(str, Enum):
    VERIFIED = "verified"
    DECLARED_ID = "declared_id"
    DECLARED_EMAIL = "declared_email"
    NONE = "none"


@dataclass(frozen=True)
class OwnerResolution:
    source: OwnerSource = OwnerSource.NONE
    user_id: uuid.UUID | None = None
    email: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.source is OwnerSource.NONE

    @classmethod
    def resolve(
        cls,
        identity: VerifiedIdentity | None = None,
        declared_user_id: str | None = None,
        declared_email: str | None = None,
    ) -> "OwnerResolution":
        """Rank the available owner hints.

        A declared email must be well formed; a declared user id that is not
        a UUID is ignored, matching how unknown ids are treated further on.
        """
        email = (declared_email or "").strip() or None
        if email is not None and not is_valid_email(email):
            raise InvalidInput("Invalid email format")

        if identity is not None and (identity.user_id or identity.email):
            return cls(
                source=OwnerSource.VERIFIED,
                user_id=identity.user_id,
                email=identity.email or email,
            )

        user_id = parse_uuid(declared_user_id) if declared_user_id else None
        if declared_user_id and user_id is None:
            logger.warning(f"Ignoring malformed user id {declared_user_id!r}")
        if user_id is not None:
            return cls(source=OwnerSource.DECLARED_ID, user_id=user_id, email=email)
        if email is not None:
            return cls(source=OwnerSource.DECLARED_EMAIL, email=email)
        return cls()


async def find_user(
    db: AsyncSession,
    user_id: uuid.UUID | None = None,
    email: str | None = None,
) -> User | None:
    """Look a user up by id first, then by email."""
    if user_id is not None:
        user = await db.get(User, user_id)
        if user is not None:
            return user
    if email:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()
    return None


async def link_file(
    db: AsyncSession,
    file_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
    email: str | None = None,
) -> bool:
    """Append file_id to the owner's files list. Best-effort."""
    try:
        user = await find_user(db, user_id=user_id, email=email)
        if user is None:
            logger.warning(f"No user found to link file {file_id} (id={user_id}, email={email})")
            return False
        ref = str(file_id)
        if ref not in (user.files or []):
            user.files = [*(user.files or []), ref]
            await db.commit()
        logger.info(f"Linked file {file_id} to user {user.email} ({len(user.files)} files)")
        return True
    except Exception:
        logger.exception(f"Failed to link file {file_id} to its owner")
        await db.rollback()
        return False


async def unlink_file(
    db: AsyncSession,
    file_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
    email: str | None = None,
) -> bool:
    """Remove file_id from the owner's files list. Best-effort."""
    try:
        user = await find_user(db, user_id=user_id, email=email)
        if user is None:
            return False
        ref = str(file_id)
        if ref in (user.files or []):
            user.files = [f for f in user.files if f != ref]
            await db.commit()
            logger.info(f"Removed file {file_id} from user {user.email}")
        return True
    except Exception:
        logger.exception(f"Failed to detach file {file_id} from its owner")
        await db.rollback()
        return False
