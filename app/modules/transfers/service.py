import logging
import time
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config.database import unit_of_work
from app.config.settings import settings
from app.core.auth.permissions import ensure_assigned_officer
from app.core.auth.roles import Role
from app.core.auth.schemas import UserResponse
from app.core.exceptions import (
    AppError, InvalidCompletionRequest, InvalidTransition, NotFoundError, TransferNotFound
)
from app.modules.transfers.executor import TransitionExecutor
from app.modules.transfers.repository import TransferRepository
from app.modules.transfers.schemas import (
    TransferCreate, TransferUpdate, StatusChangeRequest, ResubmitRequest,
    ForwardRequest, SendBackRequest, CompletionRequest, CoreBankingRequest,
    NoteCreate, TransferResponse, TransferDetail, TransferSummary,
    StatusHistoryEntry, DocumentInfo, NoteInfo, DeleteResult,
    TransferStatus, CompletionMode, DocumentType
)
from app.modules.transfers.state_machine import (
    completion_comment, validate_completion, validate_completion_request
)
from app.shared.database.models import Transfer
from app.shared.storage import DocumentStorage, StoredFile

logger = logging.getLogger(__name__)


class TransferService:

    def __init__(self, db: Session, storage: Optional[DocumentStorage] = None):
        self.db = db
        self.repository = TransferRepository(db)
        self.executor = TransitionExecutor(db)
        self.storage = storage or DocumentStorage()

    # ===== AGENT FUNCTIONS =====

    def create_transfer(self, request_data: TransferCreate,
                        agent: UserResponse) -> TransferResponse:
        """Submit a new transfer request; it starts in Pending"""
        with unit_of_work(self.db):
            transfer = self.repository.create_transfer(request_data.model_dump(), agent.id)

        logger.info(f"Transfer {transfer.id} created by {agent.id} for {transfer.amount}")
        return self._build_transfer_response(transfer)

    def resubmit_transfer(self, transfer_id: str, request: ResubmitRequest,
                          agent: UserResponse) -> TransferResponse:
        """Send a rejected transfer back into review"""
        return self.request_transition(transfer_id, TransferStatus.PENDING, request.comment, agent)

    def upload_documents(self, transfer_id: str, stored_files: List[StoredFile],
                         agent: UserResponse) -> List[DocumentInfo]:
        """Attach supporting documents to an existing transfer"""
        if not stored_files:
            raise AppError("No file uploaded")

        with unit_of_work(self.db):
            transfer = self._get_transfer_or_404(transfer_id)
            documents = [
                self.repository.add_document(transfer.id, stored, DocumentType.SUPPORTING.value)
                for stored in stored_files
            ]

        logger.info(f"{len(documents)} document(s) uploaded to transfer {transfer_id} by {agent.id}")
        return [DocumentInfo.model_validate(d) for d in documents]

    # ===== TRANSITIONS =====

    def request_transition(self, transfer_id: str, new_status: TransferStatus,
                           comment: Optional[str], actor: UserResponse,
                           enforce_assignment: bool = False) -> TransferResponse:
        """Generic status change validated by the state machine"""
        guard = self._assignment_guard(actor) if enforce_assignment else None
        transfer = self.executor.execute(
            transfer_id, new_status, comment, guard=guard, actor_id=actor.id
        )
        return self._build_transfer_response(transfer)

    def change_status(self, transfer_id: str, request: StatusChangeRequest,
                      officer: UserResponse) -> TransferResponse:
        """Treasury Officer status change on a transfer assigned to them"""
        return self.request_transition(
            transfer_id, request.status, request.comment, officer, enforce_assignment=True
        )

    def complete_transfer(self, transfer_id: str, request: CompletionRequest,
                          attachments: List[StoredFile],
                          officer: UserResponse) -> TransferResponse:
        """
        Mark an approved transfer as Done.

        Below the threshold a free-text comment is the evidence; above it at
        least one document must be attached. The history comment is generated.
        """
        attachments = list(attachments or [])
        precheck = validate_completion_request(request.mode, request.comment, len(attachments))
        if not precheck.allowed:
            raise InvalidCompletionRequest(precheck.reason)

        transfer = self.executor.execute(
            transfer_id,
            TransferStatus.DONE,
            request.comment,
            attachments,
            rule=lambda current: validate_completion(
                current, request.mode, request.comment, len(attachments)
            ),
            guard=self._assignment_guard(officer),
            history_comment=completion_comment(request.mode, request.comment, len(attachments)),
            actor_id=officer.id,
        )
        return self._build_transfer_response(transfer)

    # ===== TREASURY OPS FUNCTIONS =====

    def forward_to_officer(self, transfer_id: str, request: ForwardRequest,
                           ops_user: UserResponse) -> TransferResponse:
        """
        Hand a transfer to a Treasury Officer.

        A pending transfer is approved and assigned in one unit; an approved
        one is reassigned to the new officer.
        """
        officer = self.repository.get_active_user(request.treasury_officer_id)
        if not officer:
            raise NotFoundError(
                "Treasury Officer not found",
                {"treasury_officer_id": request.treasury_officer_id},
            )
        if Role.parse(officer.role) != Role.TREASURY_OFFICER:
            raise AppError("Selected user is not a Treasury Officer")

        current = self._get_transfer_or_404(transfer_id)
        if current.status == TransferStatus.APPROVED.value:
            return self._reassign_officer(transfer_id, officer.id, request.comment, ops_user)

        transfer = self.executor.execute(
            transfer_id,
            TransferStatus.APPROVED,
            request.comment,
            actor_id=ops_user.id,
            changes={"assigned_officer_id": officer.id},
        )
        logger.info(f"Transfer {transfer_id} forwarded to officer {officer.id}")
        return self._build_transfer_response(transfer)

    def send_back_to_agent(self, transfer_id: str, request: SendBackRequest,
                           ops_user: UserResponse) -> TransferResponse:
        """Reject a pending transfer back to the Agent with a reason"""
        return self.request_transition(
            transfer_id, TransferStatus.REJECTED, request.comment, ops_user
        )

    def _reassign_officer(self, transfer_id: str, officer_id: str, comment: str,
                          ops_user: UserResponse) -> TransferResponse:
        with unit_of_work(self.db):
            transfer = self.repository.get_for_update(transfer_id)
            if transfer is None:
                raise TransferNotFound(transfer_id)
            if transfer.status != TransferStatus.APPROVED.value:
                raise InvalidTransition(
                    f"Only pending or approved transfers can be forwarded (current: {transfer.status})"
                )
            previous = transfer.assigned_officer_id
            self.repository.update_fields(transfer, {"assigned_officer_id": officer_id})
            self.repository.add_note(
                transfer_id, ops_user.id, f"Reassigned to Treasury Officer {officer_id}: {comment}"
            )

        logger.info(f"Transfer {transfer_id} reassigned from {previous} to {officer_id}")
        return self._build_transfer_response(transfer)

    # ===== TRADE DESK FUNCTIONS =====

    def send_to_core_banking(self, transfer_id: str, request: CoreBankingRequest,
                             trade_desk: UserResponse) -> TransferResponse:
        """Hand an approved transfer to core banking; it moves to Processing"""
        reference = f"CORE-{int(time.time() * 1000)}"
        transfer = self.executor.execute(
            transfer_id,
            TransferStatus.PROCESSING,
            request.comment,
            actor_id=trade_desk.id,
            changes={"core_banking_reference": reference},
        )
        logger.info(f"Transfer {transfer_id} sent to core banking as {reference}")
        return self._build_transfer_response(transfer)

    def add_note(self, transfer_id: str, request: NoteCreate,
                 trade_desk: UserResponse) -> NoteInfo:
        with unit_of_work(self.db):
            transfer = self._get_transfer_or_404(transfer_id)
            note = self.repository.add_note(transfer.id, trade_desk.id, request.note.strip())
        return NoteInfo.model_validate(note)

    def delete_transfer(self, transfer_id: str, actor: UserResponse) -> DeleteResult:
        """Delete a transfer with its rows, then remove its files best-effort"""
        with unit_of_work(self.db):
            transfer = self._get_transfer_or_404(transfer_id)
            file_paths = [d.file_path for d in self.repository.get_documents(transfer_id)]
            self.repository.delete_transfer(transfer)

        files_deleted = self.storage.remove_files(file_paths)
        logger.info(
            f"Transfer {transfer_id} deleted by {actor.id}: "
            f"{files_deleted['successful']}/{files_deleted['total']} file(s) removed"
        )
        return DeleteResult(
            message="Transfer and associated documents deleted successfully",
            transfer_id=transfer_id,
            documents_deleted=len(file_paths),
            files_deleted=files_deleted,
        )

    # ===== ADMIN FUNCTIONS =====

    def update_transfer(self, transfer_id: str, request: TransferUpdate,
                        admin: UserResponse) -> TransferResponse:
        """Privileged edit of party/bank fields and amount"""
        changes = {k: v for k, v in request.model_dump(exclude_unset=True).items() if v is not None}
        if not changes:
            raise AppError("No fields to update")

        with unit_of_work(self.db):
            transfer = self.repository.get_for_update(transfer_id)
            if transfer is None:
                raise TransferNotFound(transfer_id)
            self.repository.update_fields(transfer, changes)

        logger.info(f"Transfer {transfer_id} fields {sorted(changes)} updated by {admin.id}")
        return self._build_transfer_response(transfer)

    # ===== QUERIES =====

    def list_by_status(self, status: Optional[TransferStatus] = None) -> List[TransferResponse]:
        transfers = self.repository.list_transfers(status.value if status else None)
        counts = self.repository.count_documents([t.id for t in transfers])
        return [self._build_transfer_response(t, counts.get(t.id, 0)) for t in transfers]

    def get_assigned_transfers(self, officer: UserResponse) -> List[TransferResponse]:
        """Transfers forwarded to this officer that still need action"""
        transfers = self.repository.get_assigned_transfers(
            officer.id, [TransferStatus.APPROVED.value, TransferStatus.PROCESSING.value]
        )
        counts = self.repository.count_documents([t.id for t in transfers])
        return [self._build_transfer_response(t, counts.get(t.id, 0)) for t in transfers]

    def get_transfer_detail(self, transfer_id: str) -> TransferDetail:
        transfer = self._get_transfer_or_404(transfer_id)
        documents = self.repository.get_documents(transfer_id)
        base = self._build_transfer_response(transfer, len(documents))
        return TransferDetail(
            **base.model_dump(),
            status_history=self._history_entries(transfer_id),
            documents=[DocumentInfo.model_validate(d) for d in documents],
            notes=[NoteInfo.model_validate(n) for n in self.repository.get_notes(transfer_id)],
        )

    def get_status_history(self, transfer_id: str) -> List[StatusHistoryEntry]:
        """History of a transfer, newest first"""
        self._get_transfer_or_404(transfer_id)
        return self._history_entries(transfer_id)

    def get_summary(self) -> TransferSummary:
        counts = self.repository.count_by_status()
        return TransferSummary(
            total=sum(counts.values()),
            pending=counts.get(TransferStatus.PENDING.value, 0),
            approved=counts.get(TransferStatus.APPROVED.value, 0),
            rejected=counts.get(TransferStatus.REJECTED.value, 0),
            processing=counts.get(TransferStatus.PROCESSING.value, 0),
            done=counts.get(TransferStatus.DONE.value, 0),
            failed=counts.get(TransferStatus.FAILED.value, 0),
        )

    # ===== HELPER METHODS =====

    def _get_transfer_or_404(self, transfer_id: str) -> Transfer:
        transfer = self.repository.get_transfer_by_id(transfer_id)
        if not transfer:
            raise TransferNotFound(transfer_id)
        return transfer

    def _history_entries(self, transfer_id: str) -> List[StatusHistoryEntry]:
        return [
            StatusHistoryEntry.model_validate(h)
            for h in self.repository.get_status_history(transfer_id)
        ]

    def _assignment_guard(self, actor: UserResponse):
        def guard(transfer: Transfer) -> None:
            ensure_assigned_officer(actor, transfer.assigned_officer_id)
        return guard

    @staticmethod
    def completion_mode_for(amount) -> CompletionMode:
        if amount is not None and amount >= settings.completion_threshold_amount:
            return CompletionMode.ABOVE
        return CompletionMode.BELOW

    def _build_transfer_response(self, transfer: Transfer,
                                 document_count: Optional[int] = None) -> TransferResponse:
        if document_count is None:
            document_count = self.repository.count_documents([transfer.id]).get(transfer.id, 0)

        return TransferResponse(
            id=transfer.id,
            status=TransferStatus.parse(transfer.status),
            order_giver_name=transfer.order_giver_name,
            order_giver_account=transfer.order_giver_account,
            order_giver_address=transfer.order_giver_address,
            beneficiary_name=transfer.beneficiary_name,
            beneficiary_account=transfer.beneficiary_account,
            beneficiary_address=transfer.beneficiary_address,
            beneficiary_bank_name=transfer.beneficiary_bank_name,
            beneficiary_bank_swift=transfer.beneficiary_bank_swift,
            amount=transfer.amount,
            amount_in_words=transfer.amount_in_words,
            transfer_reason=transfer.transfer_reason,
            transfer_type=transfer.transfer_type,
            created_by_id=transfer.created_by_id,
            assigned_officer_id=transfer.assigned_officer_id,
            core_banking_reference=transfer.core_banking_reference,
            document_count=document_count,
            completion_mode=self.completion_mode_for(transfer.amount),
            created_at=transfer.created_at,
            updated_at=transfer.updated_at,
        )
