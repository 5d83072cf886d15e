import logging
from typing import List

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.roles import Role
from app.core.auth.schemas import UserResponse
from app.core.auth.security import decode_access_token
from app.core.exceptions import AuthenticationError, Forbidden
from app.shared.database.models import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> UserResponse:
    """Resolve the bearer token to an active user with a canonical role"""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Unauthorized")

    payload = decode_access_token(credentials.credentials)
    user = db.query(User).filter(User.id == payload["sub"]).first()
    if not user or not user.is_active:
        raise AuthenticationError("Invalid or expired token")

    return UserResponse.model_validate(user)


def require_roles(allowed_roles: List[str]):
    """Dependency factory: caller must hold one of the given roles (admins always pass)"""
    allowed = {Role.parse(role) for role in allowed_roles}

    def checker(current_user: UserResponse = Depends(get_current_user)) -> UserResponse:
        if current_user.role.is_admin or current_user.role in allowed:
            return current_user
        logger.info(f"Role {current_user.role.value} denied, requires one of {sorted(r.value for r in allowed)}")
        raise Forbidden("Forbidden")

    return checker
