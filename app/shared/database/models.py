import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Numeric, BigInteger
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.config.database import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Automatic created/updated timestamps"""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

# ===== USERS =====

class User(Base, TimestampMixin):
    """Workflow user; role holds the canonical Role value"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255))
    role = Column(String(50), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    created_transfers = relationship(
        "Transfer", back_populates="created_by", foreign_keys="Transfer.created_by_id"
    )
    assigned_transfers = relationship(
        "Transfer", back_populates="assigned_officer", foreign_keys="Transfer.assigned_officer_id"
    )

# ===== TRANSFERS =====

class Transfer(Base, TimestampMixin):
    """Client fund-transfer request moving through the approval chain"""
    __tablename__ = "transfers"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    # Order giver
    order_giver_name = Column(String(255), nullable=False)
    order_giver_account = Column(String(255), nullable=False)
    order_giver_address = Column(String(255), nullable=False)

    # Beneficiary
    beneficiary_name = Column(String(255), nullable=False)
    beneficiary_account = Column(String(255), nullable=False)
    beneficiary_address = Column(String(255), nullable=False)
    beneficiary_bank_name = Column(String(255), nullable=False)
    beneficiary_bank_swift = Column(String(255), nullable=False)

    amount = Column(Numeric(18, 2), nullable=False)
    amount_in_words = Column(String(255), nullable=False)
    transfer_reason = Column(String(255), nullable=False)
    transfer_type = Column(String(255), nullable=False)

    # Workflow
    status = Column(String(50), nullable=False, default="Pending", index=True)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    assigned_officer_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), index=True)
    core_banking_reference = Column(String(64))

    # Relationships
    created_by = relationship("User", back_populates="created_transfers", foreign_keys=[created_by_id])
    assigned_officer = relationship("User", back_populates="assigned_transfers", foreign_keys=[assigned_officer_id])
    status_history = relationship(
        "TransferStatusHistory",
        back_populates="transfer",
        cascade="all, delete-orphan",
    )
    documents = relationship(
        "TransferDocument",
        back_populates="transfer",
        cascade="all, delete-orphan",
    )
    notes = relationship(
        "TransferNote",
        back_populates="transfer",
        cascade="all, delete-orphan",
    )

class TransferStatusHistory(Base):
    """Append-only log: one row per successful status transition"""
    __tablename__ = "transfer_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transfer_id = Column(String(36), ForeignKey("transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    comment = Column(Text)
    actor_id = Column(String(36))
    created_at = Column(DateTime, nullable=False)

    # Relationships
    transfer = relationship("Transfer", back_populates="status_history")

class TransferDocument(Base):
    """Metadata of a stored file attached to a transfer"""
    __tablename__ = "transfer_documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    transfer_id = Column(String(36), ForeignKey("transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    original_name = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(512), nullable=False)
    file_type = Column(String(50))
    file_size = Column(BigInteger)
    document_type = Column(String(50))
    uploaded_at = Column(DateTime, nullable=False)

    # Relationships
    transfer = relationship("Transfer", back_populates="documents")

class TransferNote(Base):
    """Free-text note on a transfer; never changes status"""
    __tablename__ = "transfer_notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transfer_id = Column(String(36), ForeignKey("transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)

    # Relationships
    transfer = relationship("Transfer", back_populates="notes")
    author = relationship("User")

# ===== SESSIONS =====

class RefreshToken(Base):
    """Server-side record of an issued refresh token; only its SHA-256 is kept"""
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    user_agent = Column(String(255))
    ip = Column(String(64))
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)

    # Relationships
    user = relationship("User")

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None
