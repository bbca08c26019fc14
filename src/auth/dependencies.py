from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from src.config import settings
from src.database import get_db
from src.auth.utils import verify_token
from src.auth.service import UserService
from src.exceptions import UnauthorizedError
from src.models import User, UserRole, UserStatus

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)

def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user from the bearer header or the session cookie"""
    token = token or request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise UnauthorizedError()

    token_data = verify_token(token)

    user = UserService.get_user_by_id(db, user_id=token_data["user_id"])
    if user is None:
        raise UnauthorizedError("Impossible de valider les identifiants")
    if user.status != UserStatus.ACTIVE:
        raise UnauthorizedError("Compte suspendu ou inactif")

    return user

def require_roles(*roles: UserRole):
    """Dependency factory rejecting users whose role is not listed"""
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise UnauthorizedError("Rôle non autorisé pour cette opération")
        return current_user
    return checker

require_admin = require_roles(UserRole.ADMIN)
require_patron = require_roles(UserRole.PATRON)
