"""
Users module

Account management for the transfer workflow:
- Admins create users, change roles and activate/deactivate accounts
- Treasury OPS look up the officers a transfer can be forwarded to
"""

from .router import router as users_router
from .service import UserService
from .repository import UserRepository

__all__ = [
    "users_router",
    "UserService",
    "UserRepository"
]
