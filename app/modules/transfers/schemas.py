from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
from enum import Enum

# ===== ENUMS =====

class TransferStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PROCESSING = "Processing"
    DONE = "Done"
    FAILED = "Failed"

    @classmethod
    def parse(cls, value) -> "TransferStatus":
        """Accept canonical names plus the legacy vocabularies still sent by older clients"""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in _STATUS_LOOKUP:
            return _STATUS_LOOKUP[key]
        raise ValueError(f"Unknown transfer status: {value!r}")


_STATUS_LOOKUP = {status.value.lower(): status for status in TransferStatus}
_STATUS_LOOKUP.update({
    "en attente": TransferStatus.PENDING,
    "waiting": TransferStatus.PENDING,
    "completed": TransferStatus.DONE,
    "sent": TransferStatus.PROCESSING,
})

class CompletionMode(str, Enum):
    BELOW = "below"
    ABOVE = "above"

class DocumentType(str, Enum):
    SUPPORTING = "supporting_document"
    COMPLETION = "completion_document"

# ===== REQUEST SCHEMAS =====

class TransferCreate(BaseModel):
    """Agent submission of a new transfer request"""
    order_giver_name: str = Field(..., min_length=1, max_length=255)
    order_giver_account: str = Field(..., min_length=1, max_length=255)
    order_giver_address: str = Field(..., min_length=1, max_length=255)
    beneficiary_name: str = Field(..., min_length=1, max_length=255)
    beneficiary_account: str = Field(..., min_length=1, max_length=255)
    beneficiary_address: str = Field(..., min_length=1, max_length=255)
    beneficiary_bank_name: str = Field(..., min_length=1, max_length=255)
    beneficiary_bank_swift: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2)
    amount_in_words: str = Field(..., min_length=1, max_length=255)
    transfer_reason: str = Field(..., min_length=1, max_length=255)
    transfer_type: str = Field(..., min_length=1, max_length=255)

    @field_validator(
        "order_giver_name", "order_giver_account", "order_giver_address",
        "beneficiary_name", "beneficiary_account", "beneficiary_address",
        "beneficiary_bank_name", "beneficiary_bank_swift",
        "amount_in_words", "transfer_reason", "transfer_type",
    )
    @classmethod
    def strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

class TransferUpdate(BaseModel):
    """Privileged partial update of party/bank fields; status is not editable here"""
    order_giver_name: Optional[str] = Field(None, min_length=1, max_length=255)
    order_giver_account: Optional[str] = Field(None, min_length=1, max_length=255)
    order_giver_address: Optional[str] = Field(None, min_length=1, max_length=255)
    beneficiary_name: Optional[str] = Field(None, min_length=1, max_length=255)
    beneficiary_account: Optional[str] = Field(None, min_length=1, max_length=255)
    beneficiary_address: Optional[str] = Field(None, min_length=1, max_length=255)
    beneficiary_bank_name: Optional[str] = Field(None, min_length=1, max_length=255)
    beneficiary_bank_swift: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=18, decimal_places=2)
    amount_in_words: Optional[str] = Field(None, min_length=1, max_length=255)
    transfer_reason: Optional[str] = Field(None, min_length=1, max_length=255)
    transfer_type: Optional[str] = Field(None, min_length=1, max_length=255)

class StatusChangeRequest(BaseModel):
    """Generic transition through the state machine"""
    status: TransferStatus
    comment: Optional[str] = Field(None, max_length=2000)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, value):
        return TransferStatus.parse(value)

class ResubmitRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=2000)

class ForwardRequest(BaseModel):
    """Treasury OPS hands a transfer to a Treasury Officer"""
    treasury_officer_id: str = Field(..., min_length=1)
    comment: str = Field(..., min_length=1, max_length=2000)

class SendBackRequest(BaseModel):
    """Treasury OPS returns a transfer to the Agent"""
    comment: str = Field(..., min_length=1, max_length=2000)

class CompletionRequest(BaseModel):
    mode: CompletionMode
    comment: Optional[str] = Field(None, max_length=2000)

class CoreBankingRequest(BaseModel):
    comment: str = Field(..., min_length=1, max_length=2000)

class NoteCreate(BaseModel):
    note: str = Field(..., min_length=1, max_length=2000)

# ===== RESPONSE SCHEMAS =====

class StatusHistoryEntry(BaseModel):
    id: int
    status: str
    comment: Optional[str] = None
    actor_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class DocumentInfo(BaseModel):
    id: str
    original_name: str
    file_name: str
    file_path: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    document_type: Optional[str] = None
    uploaded_at: datetime

    class Config:
        from_attributes = True

class NoteInfo(BaseModel):
    id: int
    text: str
    author_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class TransferResponse(BaseModel):
    """Snapshot of a transfer after an operation"""
    id: str
    status: TransferStatus

    order_giver_name: str
    order_giver_account: str
    order_giver_address: str
    beneficiary_name: str
    beneficiary_account: str
    beneficiary_address: str
    beneficiary_bank_name: str
    beneficiary_bank_swift: str
    amount: Decimal
    amount_in_words: str
    transfer_reason: str
    transfer_type: str

    created_by_id: Optional[str] = None
    assigned_officer_id: Optional[str] = None
    core_banking_reference: Optional[str] = None
    document_count: int = 0

    # Expected completion evidence for this amount
    completion_mode: CompletionMode

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class TransferDetail(TransferResponse):
    status_history: List[StatusHistoryEntry] = []
    documents: List[DocumentInfo] = []
    notes: List[NoteInfo] = []

class TransferSummary(BaseModel):
    """Counts per status"""
    total: int
    pending: int
    approved: int
    rejected: int
    processing: int
    done: int
    failed: int

class DeleteResult(BaseModel):
    success: bool = True
    message: str
    transfer_id: str
    documents_deleted: int
    files_deleted: dict
