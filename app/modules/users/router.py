from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.core.auth.permissions import Action, require_action
from app.core.auth.roles import Role
from app.core.auth.schemas import UserResponse
from app.core.exceptions import AppError
from .service import UserService
from .schemas import OfficerInfo, UserCreate, UserUpdate

router = APIRouter(prefix="/users", tags=["Users"])

# ===== TREASURY OPS =====

@router.get("/treasury-officers", response_model=List[OfficerInfo])
async def list_treasury_officers(
    current_user: UserResponse = Depends(require_action(Action.LIST_OFFICERS)),
    db: Session = Depends(get_db)
):
    """Active Treasury Officers available as forwarding targets"""
    service = UserService(db)
    return service.list_treasury_officers()

# ===== ADMIN =====

@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    user_data: UserCreate,
    current_user: UserResponse = Depends(require_action(Action.MANAGE_USERS)),
    db: Session = Depends(get_db)
):
    """
    Create a user.

    **Validations:**
    - Email unique in the system
    - Role is one of the workflow roles (any spelling accepted)
    """
    service = UserService(db)
    return service.create_user(user_data, current_user)

@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    current_user: UserResponse = Depends(require_action(Action.MANAGE_USERS)),
    db: Session = Depends(get_db)
):
    role_filter = None
    if role:
        try:
            role_filter = Role.parse(role)
        except ValueError as e:
            raise AppError(str(e))

    service = UserService(db)
    return service.list_users(role_filter, is_active)

@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    current_user: UserResponse = Depends(require_action(Action.MANAGE_USERS)),
    db: Session = Depends(get_db)
):
    """Activate/deactivate a user or change their role"""
    service = UserService(db)
    return service.update_user(user_id, update_data, current_user)
