import logging
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.config.database import unit_of_work
from app.core.exceptions import (
    InvalidCompletionRequest, InvalidTransition, TransferNotFound, TransitionConflict
)
from app.modules.transfers.repository import TransferRepository
from app.modules.transfers.schemas import DocumentType, TransferStatus
from app.modules.transfers.state_machine import (
    INVALID_COMPLETION, TransitionDecision, validate_transition
)
from app.shared.database.models import Transfer
from app.shared.storage import StoredFile

logger = logging.getLogger(__name__)

# How many times the guarded status write is attempted before giving up
MAX_STATUS_WRITES = 2

Rule = Callable[[str], TransitionDecision]


class TransitionExecutor:
    """
    Runs one status transition as a single unit of work:
    lock + load, validate, write status, append history, attach documents, commit.
    Any failure rolls the whole unit back.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = TransferRepository(db)

    def execute(
        self,
        transfer_id: str,
        requested_status: TransferStatus,
        comment: Optional[str] = None,
        attachments: Optional[Iterable[StoredFile]] = None,
        *,
        rule: Optional[Rule] = None,
        guard: Optional[Callable[[Transfer], None]] = None,
        history_comment: Optional[str] = None,
        actor_id: Optional[str] = None,
        changes: Optional[dict] = None,
    ) -> Transfer:
        """
        `rule` decides legality from the current status; by default the generic
        state machine. `guard` runs against the locked row before the rule and
        may raise (ownership checks). `history_comment` replaces the free-text
        comment in the history entry. `changes` are extra columns written with
        the status.
        """
        requested_status = TransferStatus.parse(requested_status)
        attachments: List[StoredFile] = list(attachments or [])
        if rule is None:
            rule = lambda current: validate_transition(current, requested_status, comment)  # noqa: E731
        if history_comment is None:
            history_comment = comment if comment and comment.strip() else None

        if attachments and requested_status != TransferStatus.DONE:
            raise InvalidTransition("Documents can only be attached when completing a transfer")

        with unit_of_work(self.db):
            transfer = self._load(transfer_id)

            for attempt in range(1, MAX_STATUS_WRITES + 1):
                current_status = transfer.status
                if guard is not None:
                    guard(transfer)
                self._check(rule(current_status), transfer_id)

                if self.repository.compare_and_set_status(
                    transfer_id, current_status, requested_status.value, **(changes or {})
                ):
                    self.db.refresh(transfer)
                    break

                # Someone else moved the row between our read and our write:
                # re-read and judge the request against the new status.
                logger.warning(
                    f"Transfer {transfer_id} changed concurrently (was {current_status}), "
                    f"re-evaluating {requested_status.value} (attempt {attempt})"
                )
                transfer = self._load(transfer_id)
            else:
                raise TransitionConflict(
                    "Transfer was modified concurrently, please retry",
                    {"transfer_id": transfer_id},
                )

            self.repository.add_status_history(
                transfer_id, requested_status.value, history_comment, actor_id
            )
            for stored in attachments:
                self.repository.add_document(transfer_id, stored, DocumentType.COMPLETION.value)

        logger.info(
            f"Transfer {transfer_id}: {current_status} -> {requested_status.value}"
            f" by {actor_id or 'system'} ({len(attachments)} document(s))"
        )
        return transfer

    def _load(self, transfer_id: str) -> Transfer:
        transfer = self.repository.get_for_update(transfer_id)
        if transfer is None:
            raise TransferNotFound(transfer_id)
        return transfer

    def _check(self, decision: TransitionDecision, transfer_id: str) -> None:
        if decision.allowed:
            return
        logger.info(f"Transfer {transfer_id}: transition rejected - {decision.reason}")
        if decision.code == INVALID_COMPLETION:
            raise InvalidCompletionRequest(decision.reason)
        raise InvalidTransition(decision.reason, {"code": decision.code})
