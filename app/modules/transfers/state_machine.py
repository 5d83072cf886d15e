"""
Transfer status state machine.

Pure decision functions: no I/O, no session, no clock. The executor asks
these whether a requested change is legal before touching the database.

Generic transitions (used by the plain status-update path)::

    Pending    -> Approved | Rejected
    Rejected   -> Pending
    Approved   -> Processing
    Processing -> Done | Failed

Completion is a separate, stricter rule: a transfer is marked Done straight
from Approved, with evidence depending on the completion mode.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from app.modules.transfers.schemas import CompletionMode, TransferStatus

ALLOWED_TRANSITIONS: Dict[TransferStatus, FrozenSet[TransferStatus]] = {
    TransferStatus.PENDING: frozenset({TransferStatus.APPROVED, TransferStatus.REJECTED}),
    TransferStatus.REJECTED: frozenset({TransferStatus.PENDING}),
    TransferStatus.APPROVED: frozenset({TransferStatus.PROCESSING}),
    TransferStatus.PROCESSING: frozenset({TransferStatus.DONE, TransferStatus.FAILED}),
    TransferStatus.DONE: frozenset(),
    TransferStatus.FAILED: frozenset(),
}

# Decision codes
INVALID_TRANSITION = "invalid_transition"
COMMENT_REQUIRED = "comment_required"
INVALID_COMPLETION = "invalid_completion"


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def ok(cls) -> "TransitionDecision":
        return cls(allowed=True)

    @classmethod
    def rejected(cls, reason: str, code: str = INVALID_TRANSITION) -> "TransitionDecision":
        return cls(allowed=False, reason=reason, code=code)


def _has_text(comment: Optional[str]) -> bool:
    return comment is not None and comment.strip() != ""


def _label(status) -> str:
    return status.value if isinstance(status, TransferStatus) else str(status)


def _coerce(status) -> Optional[TransferStatus]:
    try:
        return TransferStatus.parse(status)
    except ValueError:
        return None


def validate_transition(current, requested, comment: Optional[str] = None) -> TransitionDecision:
    """Decide whether `current -> requested` is a legal generic transition"""
    current_status = _coerce(current)
    requested_status = _coerce(requested)

    if (
        current_status is None
        or requested_status is None
        or requested_status not in ALLOWED_TRANSITIONS[current_status]
    ):
        return TransitionDecision.rejected(
            f"Invalid status transition from {_label(current)} to {_label(requested)}"
        )

    if requested_status == TransferStatus.REJECTED and not _has_text(comment):
        return TransitionDecision.rejected(
            "Comment is required when rejecting a transfer", COMMENT_REQUIRED
        )

    return TransitionDecision.ok()


def validate_completion_request(mode, comment: Optional[str], attachment_count: int) -> TransitionDecision:
    """Evidence check for a completion request, independent of the transfer's state"""
    try:
        completion_mode = CompletionMode(mode)
    except ValueError:
        return TransitionDecision.rejected(
            f"Unknown completion mode: {mode}", INVALID_COMPLETION
        )

    if completion_mode == CompletionMode.BELOW and not _has_text(comment):
        return TransitionDecision.rejected(
            "Comment is required to complete a transfer below the threshold", INVALID_COMPLETION
        )
    if completion_mode == CompletionMode.ABOVE and attachment_count < 1:
        return TransitionDecision.rejected(
            "Document upload is required to complete a transfer above the threshold", INVALID_COMPLETION
        )
    return TransitionDecision.ok()


def validate_completion(current, mode, comment: Optional[str], attachment_count: int) -> TransitionDecision:
    """Decide whether a transfer in `current` may be marked Done in this mode"""
    decision = validate_completion_request(mode, comment, attachment_count)
    if not decision.allowed:
        return decision

    if _coerce(current) != TransferStatus.APPROVED:
        return TransitionDecision.rejected("Only approved transfers can be marked as done")

    return TransitionDecision.ok()


def completion_comment(mode, comment: Optional[str], attachment_count: int) -> str:
    """History comment recorded for a completion"""
    if CompletionMode(mode) == CompletionMode.BELOW:
        return f"Marked as done (Below threshold): {comment.strip()}"
    return f"Marked as done (Above threshold) with {attachment_count} document(s)"
