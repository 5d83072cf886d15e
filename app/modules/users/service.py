import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config.database import unit_of_work
from app.config.settings import settings
from app.core.auth.roles import Role
from app.core.auth.schemas import TokenResponse, UserResponse
from app.core.auth.security import (
    create_access_token, create_refresh_token, decode_refresh_token,
    hash_password, hash_token, verify_password
)
from app.core.exceptions import AppError, AuthenticationError, ConflictError, NotFoundError
from app.modules.users.repository import UserRepository
from app.modules.users.schemas import OfficerInfo, UserCreate, UserUpdate
from app.shared.database.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    token: TokenResponse
    refresh_token: str
    refresh_expires_at: datetime


class UserService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = UserRepository(db)

    # ===== AUTHENTICATION =====

    def authenticate(self, email: str, password: str,
                     user_agent: Optional[str] = None,
                     ip: Optional[str] = None) -> IssuedSession:
        """Check credentials; issue an access token and a stored refresh token"""
        user = self.repository.get_by_email(email.strip())
        if not user or not verify_password(password, user.password_hash):
            logger.info(f"Failed login for {email}")
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthenticationError("User account is inactive")

        with unit_of_work(self.db):
            issued = self._issue_session(user, user_agent, ip)

        logger.info(f"User {user.id} logged in as {issued.token.user.role.value}")
        return issued

    def refresh_session(self, refresh_token: Optional[str],
                        user_agent: Optional[str] = None,
                        ip: Optional[str] = None) -> IssuedSession:
        """
        Rotate a refresh token.

        The presented token must be stored, unrevoked and unexpired; it is
        revoked and replaced in the same unit of work, so it works only once.
        """
        if not refresh_token:
            raise AuthenticationError("No refresh token")
        payload = decode_refresh_token(refresh_token)

        with unit_of_work(self.db):
            record = self.repository.get_refresh_token_for_update(hash_token(refresh_token))
            if (
                record is None
                or record.is_revoked
                or record.user_id != payload["sub"]
                or record.expires_at <= datetime.utcnow()
            ):
                logger.warning(f"Refused refresh token for user {payload['sub']}")
                raise AuthenticationError("Invalid refresh token")

            user = self.repository.get_by_id(record.user_id)
            if not user or not user.is_active:
                raise AuthenticationError("Invalid user")

            self.repository.revoke_refresh_token(record)
            issued = self._issue_session(user, user_agent, ip)

        logger.info(f"Refresh token rotated for user {user.id}")
        return issued

    def logout(self, refresh_token: Optional[str]) -> bool:
        """Revoke the session's refresh token; unknown or invalid tokens are ignored"""
        if not refresh_token:
            return False
        try:
            payload = decode_refresh_token(refresh_token)
        except AuthenticationError:
            logger.warning("Logout with an unreadable refresh token")
            return False

        with unit_of_work(self.db):
            record = self.repository.get_refresh_token_for_update(hash_token(refresh_token))
            if record is None or record.is_revoked or record.user_id != payload["sub"]:
                return False
            self.repository.revoke_refresh_token(record)

        logger.info(f"User {payload['sub']} logged out")
        return True

    def _issue_session(self, user: User, user_agent: Optional[str],
                       ip: Optional[str]) -> IssuedSession:
        profile = UserResponse.model_validate(user)
        refresh_token, refresh_expires_at = create_refresh_token(user.id)
        self.repository.store_refresh_token(
            user.id, hash_token(refresh_token), refresh_expires_at, user_agent, ip
        )
        return IssuedSession(
            token=TokenResponse(
                access_token=create_access_token(user.id, profile.role.value),
                expires_in=settings.access_token_expire_minutes * 60,
                user=profile,
            ),
            refresh_token=refresh_token,
            refresh_expires_at=refresh_expires_at,
        )

    # ===== USER MANAGEMENT =====

    def create_user(self, user_data: UserCreate, admin: UserResponse) -> UserResponse:
        if self.repository.get_by_email(user_data.email):
            raise ConflictError("Email already in use", {"email": user_data.email})

        with unit_of_work(self.db):
            user = self.repository.create_user({
                "email": user_data.email,
                "password_hash": hash_password(user_data.password),
                "name": user_data.name.strip(),
                "role": user_data.role.value,
                "is_active": True,
            })

        logger.info(f"User {user.id} ({user.role}) created by {admin.id}")
        return UserResponse.model_validate(user)

    def list_users(self, role: Optional[Role] = None,
                   is_active: Optional[bool] = None) -> List[UserResponse]:
        users = self.repository.list_users(is_active=is_active)
        profiles = [UserResponse.model_validate(u) for u in users]
        if role:
            profiles = [p for p in profiles if p.role == role]
        return profiles

    def update_user(self, user_id: str, update_data: UserUpdate,
                    admin: UserResponse) -> UserResponse:
        """Change name, role or active flag; admins cannot lock themselves out"""
        changes = update_data.model_dump(exclude_unset=True)
        if not changes:
            raise AppError("No fields to update")
        if user_id == admin.id and (
            changes.get("is_active") is False
            or ("role" in changes and changes["role"] is not None and not changes["role"].is_admin)
        ):
            raise AppError("You cannot deactivate or demote your own account")
        if changes.get("role") is not None:
            changes["role"] = changes["role"].value

        with unit_of_work(self.db):
            user = self.repository.get_by_id(user_id)
            if not user:
                raise NotFoundError("User not found", {"user_id": user_id})
            self.repository.update_user(user, changes)

        logger.info(f"User {user_id} updated by {admin.id}: {sorted(changes)}")
        return UserResponse.model_validate(user)

    # ===== TREASURY OFFICERS =====

    def list_treasury_officers(self) -> List[OfficerInfo]:
        """Active officers a transfer can be forwarded to"""
        officers = [
            u for u in self.repository.list_users(is_active=True)
            if _role_of(u.role) == Role.TREASURY_OFFICER
        ]
        return [OfficerInfo.model_validate(u) for u in officers]


def _role_of(value) -> Optional[Role]:
    try:
        return Role.parse(value)
    except ValueError:
        return None
