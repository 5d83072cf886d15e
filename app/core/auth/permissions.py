"""
Role-gated action routing.

Every workflow action belongs to exactly one primary role; SUPER_ADMIN and
ADMIN may perform all of them. The check depends only on the caller's role,
never on the transfer's state, and runs before any business rule.

A second, per-record check applies to Treasury Officers: once a transfer is
forwarded to an officer, only that officer may change its status or complete
it until it is forwarded to someone else.
"""

import logging
from enum import Enum
from typing import Optional

from fastapi import Depends

from app.core.auth.dependencies import get_current_user
from app.core.auth.roles import Role
from app.core.auth.schemas import UserResponse
from app.core.exceptions import Forbidden

logger = logging.getLogger(__name__)


class Action(str, Enum):
    CREATE = "create"
    RESUBMIT = "resubmit"
    UPLOAD_DOCUMENT = "upload-document"
    FORWARD = "forward"
    SEND_BACK = "send-back"
    CHANGE_STATUS = "change-status"
    COMPLETE = "complete"
    SEND_TO_CORE_BANKING = "send-to-core-banking"
    ADD_NOTE = "add-note"
    DELETE = "delete"
    UPDATE = "update"
    MANAGE_USERS = "manage-users"
    LIST_OFFICERS = "list-officers"


# None means admin-only
ACTION_ROLES = {
    Action.CREATE: Role.AGENT,
    Action.RESUBMIT: Role.AGENT,
    Action.UPLOAD_DOCUMENT: Role.AGENT,
    Action.FORWARD: Role.TREASURY_OPS,
    Action.SEND_BACK: Role.TREASURY_OPS,
    Action.LIST_OFFICERS: Role.TREASURY_OPS,
    Action.CHANGE_STATUS: Role.TREASURY_OFFICER,
    Action.COMPLETE: Role.TREASURY_OFFICER,
    Action.SEND_TO_CORE_BANKING: Role.TRADE_DESK,
    Action.ADD_NOTE: Role.TRADE_DESK,
    Action.DELETE: Role.TRADE_DESK,
    Action.UPDATE: None,
    Action.MANAGE_USERS: None,
}

# Actions gated by the officer assignment on top of the role check
OWNERSHIP_ACTIONS = frozenset({Action.CHANGE_STATUS, Action.COMPLETE})


def is_action_allowed(role: Role, action: Action) -> bool:
    if role.is_admin:
        return True
    return ACTION_ROLES.get(action) == role


def ensure_action_allowed(user: UserResponse, action: Action) -> None:
    if not is_action_allowed(user.role, action):
        logger.info(f"User {user.id} ({user.role.value}) denied action '{action.value}'")
        raise Forbidden(
            "Access denied",
            {"action": action.value, "role": user.role.value},
        )


def ensure_assigned_officer(user: UserResponse, assigned_officer_id: Optional[str]) -> None:
    """Only the officer a transfer is forwarded to may act on it"""
    if user.role.is_admin:
        return
    if assigned_officer_id is None or assigned_officer_id != user.id:
        logger.info(f"User {user.id} is not the officer assigned ({assigned_officer_id})")
        raise Forbidden("Transfer is not assigned to you")


def require_action(action: Action):
    """Dependency factory enforcing the role check for an action"""

    def checker(current_user: UserResponse = Depends(get_current_user)) -> UserResponse:
        ensure_action_allowed(current_user, action)
        return current_user

    return checker
