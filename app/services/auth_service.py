import logging
from dataclasses import dataclass
from functools import lru_cache
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.exceptions import ConflictError, UnauthorizedError
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.user import User
from app.services import user_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"

@lru_cache
def _dummy_hash() -> str:
    """Checked against when the email is unknown so both failure paths cost one hash check."""
    return get_password_hash("not-a-real-password")

@dataclass
class AuthResult:
    access_token: str
    user: User

def _issue(user: User) -> AuthResult:
    return AuthResult(access_token=create_access_token(user.id, user.email), user=user)

async def register(db: AsyncSession, email: str, password: str) -> AuthResult:
    if await user_service.get_by_email(db, email) is not None:
        raise ConflictError("User with this email already exists")
    # bcrypt is CPU-bound; keep it off the event loop.
    hashed_password = await run_in_threadpool(get_password_hash, password)
    user = await user_service.create(db, email, hashed_password)
    return _issue(user)

async def sign_in(db: AsyncSession, email: str, password: str) -> AuthResult:
    user = await user_service.get_by_email(db, email)
    hashed_password = user.hashed_password if user is not None else await run_in_threadpool(_dummy_hash)
    password_ok = await run_in_threadpool(verify_password, password, hashed_password)
    if user is None or not password_ok:
        logger.info("Sign-in rejected")
        raise UnauthorizedError(INVALID_CREDENTIALS)
    return _issue(user)
