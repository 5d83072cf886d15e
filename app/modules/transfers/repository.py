from datetime import datetime
from typing import List, Optional, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import desc, func

from app.shared.database.models import (
    Transfer, TransferStatusHistory, TransferDocument, TransferNote, User
)
from app.shared.storage import StoredFile
from app.modules.transfers.schemas import TransferStatus

class TransferRepository:
    """
    Data access for transfers and their history, documents and notes.

    Methods only add/flush; committing is left to the caller's unit of work
    so several writes land atomically.
    """

    def __init__(self, db: Session):
        self.db = db

    # ===== TRANSFER RECORDS =====

    def create_transfer(self, transfer_data: dict, created_by_id: str) -> Transfer:
        now = datetime.utcnow()
        transfer = Transfer(
            **transfer_data,
            status=TransferStatus.PENDING.value,
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(transfer)
        self.db.flush()
        return transfer

    def get_transfer_by_id(self, transfer_id: str) -> Optional[Transfer]:
        return self.db.query(Transfer).filter(Transfer.id == transfer_id).first()

    def get_for_update(self, transfer_id: str) -> Optional[Transfer]:
        """Load a transfer with a row lock, discarding any stale in-session state"""
        return (
            self.db.query(Transfer)
            .filter(Transfer.id == transfer_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def compare_and_set_status(self, transfer_id: str, expected_status: str,
                               new_status: str, **changes) -> bool:
        """Write the new status only if the row still holds `expected_status`"""
        update_data = {
            "status": new_status,
            "updated_at": datetime.utcnow(),
        }
        update_data.update(changes)

        rows_updated = self.db.query(Transfer).filter(
            Transfer.id == transfer_id,
            Transfer.status == expected_status
        ).update(update_data, synchronize_session=False)
        return rows_updated > 0

    def update_fields(self, transfer: Transfer, changes: Dict[str, Any]) -> Transfer:
        for key, value in changes.items():
            setattr(transfer, key, value)
        transfer.updated_at = datetime.utcnow()
        self.db.flush()
        return transfer

    def delete_transfer(self, transfer: Transfer) -> None:
        # ORM cascade removes history, documents and notes
        self.db.delete(transfer)
        self.db.flush()

    # ===== QUERIES =====

    def list_transfers(self, status: Optional[str] = None) -> List[Transfer]:
        query = self.db.query(Transfer)
        if status:
            query = query.filter(Transfer.status == status)
        return query.order_by(desc(Transfer.created_at)).all()

    def get_assigned_transfers(self, officer_id: str, statuses: List[str]) -> List[Transfer]:
        return self.db.query(Transfer).filter(
            Transfer.assigned_officer_id == officer_id,
            Transfer.status.in_(statuses)
        ).order_by(desc(Transfer.updated_at)).all()

    def count_by_status(self) -> Dict[str, int]:
        rows = self.db.query(
            Transfer.status,
            func.count(Transfer.id).label("count")
        ).group_by(Transfer.status).all()
        return {status: count for status, count in rows}

    def count_documents(self, transfer_ids: List[str]) -> Dict[str, int]:
        if not transfer_ids:
            return {}
        rows = self.db.query(
            TransferDocument.transfer_id,
            func.count(TransferDocument.id)
        ).filter(
            TransferDocument.transfer_id.in_(transfer_ids)
        ).group_by(TransferDocument.transfer_id).all()
        return {transfer_id: count for transfer_id, count in rows}

    # ===== STATUS HISTORY =====

    def add_status_history(self, transfer_id: str, status: str,
                           comment: Optional[str] = None,
                           actor_id: Optional[str] = None) -> TransferStatusHistory:
        entry = TransferStatusHistory(
            transfer_id=transfer_id,
            status=status,
            comment=comment,
            actor_id=actor_id,
            created_at=datetime.utcnow()
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_status_history(self, transfer_id: str) -> List[TransferStatusHistory]:
        """Newest first"""
        return self.db.query(TransferStatusHistory).filter(
            TransferStatusHistory.transfer_id == transfer_id
        ).order_by(
            desc(TransferStatusHistory.created_at),
            desc(TransferStatusHistory.id)
        ).all()

    # ===== DOCUMENTS =====

    def add_document(self, transfer_id: str, stored: StoredFile,
                     document_type: Optional[str] = None) -> TransferDocument:
        document = TransferDocument(
            transfer_id=transfer_id,
            original_name=stored.original_name,
            file_name=stored.file_name,
            file_path=stored.file_path,
            file_type=stored.file_type,
            file_size=stored.file_size,
            document_type=document_type,
            uploaded_at=datetime.utcnow()
        )
        self.db.add(document)
        self.db.flush()
        return document

    def get_documents(self, transfer_id: str) -> List[TransferDocument]:
        return self.db.query(TransferDocument).filter(
            TransferDocument.transfer_id == transfer_id
        ).order_by(desc(TransferDocument.uploaded_at)).all()

    # ===== NOTES =====

    def add_note(self, transfer_id: str, author_id: str, text: str) -> TransferNote:
        note = TransferNote(
            transfer_id=transfer_id,
            author_id=author_id,
            text=text,
            created_at=datetime.utcnow()
        )
        self.db.add(note)
        self.db.flush()
        return note

    def get_notes(self, transfer_id: str) -> List[TransferNote]:
        return self.db.query(TransferNote).filter(
            TransferNote.transfer_id == transfer_id
        ).order_by(desc(TransferNote.created_at), desc(TransferNote.id)).all()

    # ===== USERS =====

    def get_active_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(
            User.id == user_id,
            User.is_active == True  # noqa: E712
        ).first()
