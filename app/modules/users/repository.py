from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import asc

from app.shared.database.models import RefreshToken, User

class UserRepository:
    """Data access for workflow users; the caller commits"""

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, user_data: dict) -> User:
        user = User(**user_data)
        self.db.add(user)
        self.db.flush()
        return user

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def list_users(self, role: Optional[str] = None,
                   is_active: Optional[bool] = None) -> List[User]:
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        return query.order_by(asc(User.name)).all()

    def update_user(self, user: User, update_data: dict) -> User:
        for key, value in update_data.items():
            if hasattr(user, key) and value is not None:
                setattr(user, key, value)
        self.db.flush()
        return user

    # ===== REFRESH TOKENS =====

    def store_refresh_token(self, user_id: str, token_hash: str, expires_at: datetime,
                            user_agent: Optional[str] = None,
                            ip: Optional[str] = None) -> RefreshToken:
        record = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            user_agent=(user_agent or "")[:255] or None,
            ip=ip,
            created_at=datetime.utcnow()
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_refresh_token_for_update(self, token_hash: str) -> Optional[RefreshToken]:
        return self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash
        ).with_for_update().populate_existing().first()

    def revoke_refresh_token(self, record: RefreshToken) -> RefreshToken:
        record.revoked_at = datetime.utcnow()
        self.db.flush()
        return record
