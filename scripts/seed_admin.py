#!/usr/bin/env python3
"""
Create the first SUPER_ADMIN account.

Usage:
    python scripts/seed_admin.py admin@example.com "Admin Name" <password>
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config.database import SessionLocal, create_tables, unit_of_work  # noqa: E402
from app.core.auth.roles import Role  # noqa: E402
from app.core.auth.security import hash_password  # noqa: E402
from app.modules.users.repository import UserRepository  # noqa: E402


def seed_admin(email: str, name: str, password: str) -> str:
    create_tables()
    db = SessionLocal()
    try:
        repository = UserRepository(db)
        existing = repository.get_by_email(email)
        if existing:
            print(f"User {email} already exists (id={existing.id}, role={existing.role})")
            return existing.id

        with unit_of_work(db):
            user = repository.create_user({
                "email": email.strip().lower(),
                "password_hash": hash_password(password),
                "name": name,
                "role": Role.SUPER_ADMIN.value,
                "is_active": True,
            })
        print(f"Created SUPER_ADMIN {user.email} (id={user.id})")
        return user.id
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(1)
    seed_admin(sys.argv[1], sys.argv[2], sys.argv[3])
