from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import UnauthorizedError
from app.models.user import User
from app.services import user_service

BCRYPT_ROUNDS = 10
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

# Use bcrypt_sha256 to avoid bcrypt's 72-byte password limit; keep bcrypt for legacy hashes.
pwd_context = CryptContext(
    schemes=["bcrypt_sha256", "bcrypt"],
    deprecated="auto",
    bcrypt_sha256__rounds=BCRYPT_ROUNDS,
    bcrypt__rounds=BCRYPT_ROUNDS,
)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)

CREDENTIALS_ERROR = "Could not validate credentials"

def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (UnknownHashError, ValueError):
        return False

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(subject: str, username: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": subject,
        "username": username,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; any failure is reported the same way."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise UnauthorizedError(CREDENTIALS_ERROR)
    if not payload.get("sub"):
        raise UnauthorizedError(CREDENTIALS_ERROR)
    return payload

async def _get_user_from_token(token: str, db: AsyncSession) -> User:
    payload = decode_access_token(token)
    user = await user_service.get_by_id(db, payload["sub"])
    if user is None:
        raise UnauthorizedError(CREDENTIALS_ERROR)
    return user

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise UnauthorizedError(CREDENTIALS_ERROR)
    return await _get_user_from_token(token, db)
