import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.exceptions import ConflictError
from app.models.user import User

logger = logging.getLogger(__name__)

def normalize_email(email: str) -> str:
    return email.strip().lower()

async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
    return await db.scalar(select(User).where(User.email == normalize_email(email)))

async def get_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)

async def create(db: AsyncSession, email: str, hashed_password: str) -> User:
    user = User(email=normalize_email(email), hashed_password=hashed_password)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email.
        await db.rollback()
        raise ConflictError("User with this email already exists")
    await db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user
