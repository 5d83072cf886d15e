import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.dependencies import get_current_user, require_roles
from app.core.auth.permissions import Action, require_action
from app.core.auth.schemas import UserResponse
from app.core.exceptions import AppError, InvalidCompletionRequest
from app.modules.transfers.service import TransferService
from app.modules.transfers.schemas import (
    TransferCreate, TransferUpdate, StatusChangeRequest, ResubmitRequest,
    ForwardRequest, SendBackRequest, CompletionRequest, CoreBankingRequest,
    NoteCreate, TransferResponse, TransferDetail, TransferSummary,
    StatusHistoryEntry, DocumentInfo, NoteInfo, DeleteResult,
    TransferStatus, CompletionMode
)
from app.modules.transfers.state_machine import validate_completion_request
from app.shared.storage import DocumentStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transfers", tags=["Transfers"])


def _log_orphans(transfer_id: str, stored_files) -> None:
    if stored_files:
        logger.warning(
            f"Transfer {transfer_id}: request failed after storing files, "
            f"orphaned: {[f.file_path for f in stored_files]}"
        )


# ===== QUERY ENDPOINTS =====

@router.get("", response_model=List[TransferResponse])
async def list_transfers(
    status: Optional[str] = Query(None, description="Filter by status"),
    current_user: UserResponse = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List transfers, newest first.

    **Filters:**
    - status: Pending, Approved, Rejected, Processing, Done, Failed
      (legacy spellings such as "En Attente" are accepted)
    """
    status_filter = None
    if status:
        try:
            status_filter = TransferStatus.parse(status)
        except ValueError as e:
            raise AppError(str(e))

    service = TransferService(db)
    return service.list_by_status(status_filter)


@router.get("/stats", response_model=TransferSummary)
async def get_transfer_stats(
    current_user: UserResponse = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Number of transfers per status"""
    service = TransferService(db)
    return service.get_summary()


@router.get("/assigned", response_model=List[TransferResponse])
async def get_assigned_transfers(
    current_user: UserResponse = Depends(require_roles(["TreasuryOfficer"])),
    db: Session = Depends(get_db)
):
    """Approved or processing transfers forwarded to the current officer"""
    service = TransferService(db)
    return service.get_assigned_transfers(current_user)


@router.get("/{transfer_id}", response_model=TransferDetail)
async def get_transfer(
    transfer_id: str,
    current_user: UserResponse = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = TransferService(db)
    return service.get_transfer_detail(transfer_id)


@router.get("/{transfer_id}/status-history", response_model=List[StatusHistoryEntry])
async def get_status_history(
    transfer_id: str,
    current_user: UserResponse = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Status changes of a transfer, newest first"""
    service = TransferService(db)
    return service.get_status_history(transfer_id)


# ===== AGENT ENDPOINTS =====

@router.post("", response_model=TransferResponse, status_code=201)
async def create_transfer(
    request_data: TransferCreate,
    current_user: UserResponse = Depends(require_action(Action.CREATE)),
    db: Session = Depends(get_db)
):
    """
    Submit a new transfer request.

    **Behaviour:**
    - The transfer starts in Pending
    - No status history entry is written at creation
    """
    service = TransferService(db)
    return service.create_transfer(request_data, current_user)


@router.post("/{transfer_id}/resubmit", response_model=TransferResponse)
async def resubmit_transfer(
    transfer_id: str,
    request: ResubmitRequest,
    current_user: UserResponse = Depends(require_action(Action.RESUBMIT)),
    db: Session = Depends(get_db)
):
    """Send a rejected transfer back to Pending"""
    service = TransferService(db)
    return service.resubmit_transfer(transfer_id, request, current_user)


@router.post("/{transfer_id}/documents", response_model=List[DocumentInfo], status_code=201)
async def upload_documents(
    transfer_id: str,
    files: List[UploadFile] = File(...),
    current_user: UserResponse = Depends(require_action(Action.UPLOAD_DOCUMENT)),
    db: Session = Depends(get_db)
):
    """
    Attach supporting documents.

    **Limits:**
    - Extensions: .pdf, .jpg, .jpeg, .png, .docx
    - 10MB per file, 10 files per request
    """
    service = TransferService(db)
    stored = service.storage.save_uploads(files)
    try:
        return service.upload_documents(transfer_id, stored, current_user)
    except AppError:
        _log_orphans(transfer_id, stored)
        raise


# ===== TREASURY OPS ENDPOINTS =====

@router.post("/{transfer_id}/forward", response_model=TransferResponse)
async def forward_transfer(
    transfer_id: str,
    request: ForwardRequest,
    current_user: UserResponse = Depends(require_action(Action.FORWARD)),
    db: Session = Depends(get_db)
):
    """
    Forward a transfer to a Treasury Officer.

    **Behaviour:**
    - Pending: approved and assigned in one step
    - Approved: reassigned to the new officer, with a note
    """
    service = TransferService(db)
    return service.forward_to_officer(transfer_id, request, current_user)


@router.post("/{transfer_id}/send-back", response_model=TransferResponse)
async def send_back_transfer(
    transfer_id: str,
    request: SendBackRequest,
    current_user: UserResponse = Depends(require_action(Action.SEND_BACK)),
    db: Session = Depends(get_db)
):
    """Reject a pending transfer back to the Agent"""
    service = TransferService(db)
    return service.send_back_to_agent(transfer_id, request, current_user)


# ===== TREASURY OFFICER ENDPOINTS =====

@router.put("/{transfer_id}/status", response_model=TransferResponse)
async def change_transfer_status(
    transfer_id: str,
    request: StatusChangeRequest,
    current_user: UserResponse = Depends(require_action(Action.CHANGE_STATUS)),
    db: Session = Depends(get_db)
):
    """
    Generic status change.

    **Allowed transitions:**
    - Pending -> Approved | Rejected (comment required to reject)
    - Rejected -> Pending
    - Approved -> Processing
    - Processing -> Done | Failed
    """
    service = TransferService(db)
    return service.change_status(transfer_id, request, current_user)


@router.post("/{transfer_id}/complete", response_model=TransferResponse)
async def complete_transfer(
    transfer_id: str,
    mode: CompletionMode = Form(...),
    comment: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    current_user: UserResponse = Depends(require_action(Action.COMPLETE)),
    db: Session = Depends(get_db)
):
    """
    Mark an approved transfer as Done.

    **Modes:**
    - below: a comment is required
    - above: at least one document is required
    """
    uploads = [f for f in files or [] if f is not None and f.filename]
    precheck = validate_completion_request(mode, comment, len(uploads))
    if not precheck.allowed:
        raise InvalidCompletionRequest(precheck.reason)

    service = TransferService(db)
    stored = service.storage.save_uploads(uploads)
    try:
        return service.complete_transfer(
            transfer_id, CompletionRequest(mode=mode, comment=comment), stored, current_user
        )
    except AppError:
        _log_orphans(transfer_id, stored)
        raise


# ===== TRADE DESK ENDPOINTS =====

@router.post("/{transfer_id}/send-to-core-banking", response_model=TransferResponse)
async def send_to_core_banking(
    transfer_id: str,
    request: CoreBankingRequest,
    current_user: UserResponse = Depends(require_action(Action.SEND_TO_CORE_BANKING)),
    db: Session = Depends(get_db)
):
    """Hand an approved transfer to core banking (Approved -> Processing)"""
    service = TransferService(db)
    return service.send_to_core_banking(transfer_id, request, current_user)


@router.post("/{transfer_id}/notes", response_model=NoteInfo, status_code=201)
async def add_note(
    transfer_id: str,
    request: NoteCreate,
    current_user: UserResponse = Depends(require_action(Action.ADD_NOTE)),
    db: Session = Depends(get_db)
):
    service = TransferService(db)
    return service.add_note(transfer_id, request, current_user)


@router.delete("/{transfer_id}", response_model=DeleteResult)
async def delete_transfer(
    transfer_id: str,
    current_user: UserResponse = Depends(require_action(Action.DELETE)),
    db: Session = Depends(get_db)
):
    """Delete a transfer, its history, notes and documents (files best-effort)"""
    service = TransferService(db, DocumentStorage())
    return service.delete_transfer(transfer_id, current_user)


# ===== ADMIN ENDPOINTS =====

@router.patch("/{transfer_id}", response_model=TransferResponse)
async def update_transfer(
    transfer_id: str,
    request: TransferUpdate,
    current_user: UserResponse = Depends(require_action(Action.UPDATE)),
    db: Session = Depends(get_db)
):
    """Edit party, bank and amount fields; status cannot be changed here"""
    service = TransferService(db)
    return service.update_transfer(transfer_id, request, current_user)
