"""
hackjudge/security/auth.py
Bearer JWT identity

Tokens carry ``sub`` = user id and the user's global role, which must
match the stored role. Event-scoped rights (judge assignment, organizer
ownership) are checked in the services.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.config.settings import Settings
from hackjudge.database import get_db
from hackjudge.errors import ErrorCode, UnauthorizedError
from hackjudge.orm.user import User, UserRole

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# ================= TOKEN UTILS =================


def create_access_token(user_id: int, role: Optional[UserRole] = None, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for a user"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=Settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
    }
    if role is not None:
        to_encode["role"] = role.value if isinstance(role, UserRole) else str(role)
    return jwt.encode(to_encode, Settings.JWT_SECRET_KEY, algorithm=Settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, Settings.JWT_SECRET_KEY, algorithms=[Settings.JWT_ALGORITHM])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

async def user_from_token(db: AsyncSession, token: Optional[str]) -> Optional[User]:
    """
    Resolve an access token to an active user, or None.

    Shared by the HTTP dependency and the WebSocket handshake, which
    carries the token as a query parameter.
    """
    if not token:
        return None

    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        return None

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None

    role = payload.get("role")
    if role and user.role.value != role:
        logger.warning(f"Role mismatch for user {user.id}: token={role}, db={user.role.value}")
        return None

    return user


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.
    """
    if not token:
        raise UnauthorizedError()

    user = await user_from_token(db, token)
    if user is None:
        raise UnauthorizedError("Could not validate credentials", code=ErrorCode.AUTH_INVALID)
    return user
