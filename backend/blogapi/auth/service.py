from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, Dict

from ..users import service as user_service
from ..users.models import User
from ..exceptions import Unauthorized

from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError, ExpiredSignatureError
from ..config import settings


def token_lifetime() -> timedelta:
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_access_token(user: User) -> str:
    """
    Issue an access token for the user.
    The subject is the user id; role and token type ride along in the payload.
    """
    expire = datetime.now(timezone.utc) + token_lifetime()
    to_encode = {
        "sub": user.id,
        "role": user.role.value,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict:
    """
    Decode and verify signature and expiry.
    Raises Unauthorized with a message telling expired and invalid tokens apart.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthorized("Token expired.")
    except JWTError:
        raise Unauthorized("Invalid token.")


async def get_user_from_access_token(token: str, db: AsyncSession) -> User:
    payload = decode_token(token)

    if payload.get("type") != "access" or not payload.get("sub"):
        raise Unauthorized("Invalid token.")

    user = await user_service.get_user_by_id(payload["sub"], db)
    if user is None:
        raise Unauthorized("Invalid token. User not found.")
    return user


async def authenticate_user(db: AsyncSession, username: str, password: str) -> Optional[User]:
    """Returns the user on a username/password match, None otherwise."""
    user = await user_service.get_user_by_username(username.strip(), db)
    if not user or not user_service.verify_password(password, user.password_hash):
        return None
    return user
