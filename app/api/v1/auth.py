from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.dependencies import get_current_user
from app.core.auth.schemas import LoginRequest, TokenResponse, UserResponse
from app.modules.users.service import IssuedSession, UserService

router = APIRouter()


def _client_info(request: Request) -> dict:
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return {"user_agent": request.headers.get("user-agent"), "ip": ip}


def _set_refresh_cookie(response: Response, issued: IssuedSession) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=issued.refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path="/",
        domain=settings.refresh_cookie_domain,
        secure=settings.refresh_cookie_secure,
        httponly=True,
        samesite=settings.refresh_cookie_samesite,
    )


def _refresh_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(settings.refresh_cookie_name)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Exchange email and password for a bearer token.

    **Tokens:**
    - Access token in the body, expires after `ACCESS_TOKEN_EXPIRE_MINUTES`
    - Refresh token in an HttpOnly cookie, expires after `REFRESH_TOKEN_EXPIRE_DAYS`
    """
    service = UserService(db)
    issued = service.authenticate(credentials.email, credentials.password, **_client_info(request))
    _set_refresh_cookie(response, issued)
    return issued.token


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Issue a new access token from the refresh cookie.

    The refresh token is rotated: the presented one is revoked and a new one
    replaces it in the cookie.
    """
    service = UserService(db)
    issued = service.refresh_session(_refresh_cookie(request), **_client_info(request))
    _set_refresh_cookie(response, issued)
    return issued.token


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """Revoke the refresh token and clear its cookie"""
    service = UserService(db)
    service.logout(_refresh_cookie(request))
    response.delete_cookie(
        key=settings.refresh_cookie_name,
        path="/",
        domain=settings.refresh_cookie_domain,
    )
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user: UserResponse = Depends(get_current_user)):
    return current_user
