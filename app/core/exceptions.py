import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "bad_request"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class TransferNotFound(NotFoundError):

    def __init__(self, transfer_id: str):
        super().__init__("Transfer not found", {"transfer_id": transfer_id})
        self.transfer_id = transfer_id


class InvalidTransition(AppError):
    """Business rule violation raised by the state machine"""

    error_code = "invalid_transition"

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, details)
        self.reason = reason


class InvalidCompletionRequest(AppError):
    error_code = "invalid_completion_request"


class InvalidDocument(AppError):
    error_code = "invalid_document"


class DocumentTooLarge(InvalidDocument):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    error_code = "document_too_large"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthorized"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"


class TransitionConflict(ConflictError):
    error_code = "transition_conflict"


class PersistenceFailure(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "persistence_failure"


def register_exception_handlers(app: FastAPI):
    """Render AppError subclasses as JSON error responses"""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            request_id = getattr(request.state, "request_id", "-")
            logger.error(f"[{request_id}] {request.method} {request.url.path} failed: {exc.message}")
        body = {
            "success": False,
            "error": exc.error_code,
            "message": exc.message,
        }
        if exc.details:
            body["details"] = exc.details

        headers = None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(status_code=exc.status_code, content=body, headers=headers)
