"""
Transfers module

Multi-role approval workflow for outgoing fund transfers: Agents submit,
Treasury OPS forward or send back, Treasury Officers approve and complete,
Trade Desk hands off to core banking.

Layout:
- state_machine.py: pure transition rules
- executor.py: one transition as one unit of work (lock, validate, write, history)
- service.py: role actions on top of the executor
- repository.py: data access
- router.py: FastAPI endpoints
"""

from .router import router
from .service import TransferService
from .repository import TransferRepository
from .executor import TransitionExecutor
from .schemas import (
    TransferCreate,
    TransferResponse,
    TransferStatus,
    CompletionMode
)

__all__ = [
    "router",
    "TransferService",
    "TransferRepository",
    "TransitionExecutor",
    "TransferCreate",
    "TransferResponse",
    "TransferStatus",
    "CompletionMode"
]
