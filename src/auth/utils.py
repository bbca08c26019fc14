from datetime import timedelta
from typing import Optional

import jwt
from passlib.context import CryptContext

from src.config import settings
from src.database import utcnow
from src.exceptions import UnauthorizedError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a session token; `sub` must carry the user id"""
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> dict:
    """Decode a session token and return its claims"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session expirée")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Impossible de valider les identifiants")

    user_id = payload.get("sub")
    if user_id is None:
        raise UnauthorizedError("Impossible de valider les identifiants")

    try:
        payload["user_id"] = int(user_id)
    except (TypeError, ValueError):
        raise UnauthorizedError("Impossible de valider les identifiants")
    return payload
