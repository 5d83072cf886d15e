import os
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.config.database import build_engine, create_tables, get_db
from app.config.settings import settings
from app.core.auth.roles import Role
from app.core.auth.schemas import UserResponse
from app.core.auth.security import create_access_token, hash_password
from app.main import app
from app.shared.database.models import User
from app.shared.storage import DocumentStorage

PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)

USER_ROLES = {
    "agent": Role.AGENT,
    "ops": Role.TREASURY_OPS,
    "officer": Role.TREASURY_OFFICER,
    "other_officer": Role.TREASURY_OFFICER,
    "trade_desk": Role.TRADE_DESK,
    "admin": Role.ADMIN,
}


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'transfers.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(path))
    return path


@pytest.fixture
def storage(upload_dir):
    return DocumentStorage(str(upload_dir))


@pytest.fixture
def users(db):
    """One active user per workflow role, keyed by a short name"""
    created = {}
    for key, role in USER_ROLES.items():
        user = User(
            email=f"{key}@example.com",
            password_hash=PASSWORD_HASH,
            name=key.replace("_", " ").title(),
            role=role.value,
            is_active=True,
        )
        db.add(user)
        created[key] = user
    db.commit()
    return {key: UserResponse.model_validate(user) for key, user in created.items()}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(users):
    def headers_for(key: str) -> dict:
        user = users[key]
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}
    return headers_for


def make_transfer_data(amount="1500.00", **overrides) -> dict:
    data = {
        "order_giver_name": "Acme Trading",
        "order_giver_account": "FR7630001007941234567890185",
        "order_giver_address": "12 Rue de la Paix, Paris",
        "beneficiary_name": "Globex Ltd",
        "beneficiary_account": "GB29NWBK60161331926819",
        "beneficiary_address": "1 Market St, London",
        "beneficiary_bank_name": "NatWest",
        "beneficiary_bank_swift": "NWBKGB2L",
        "amount": amount,
        "amount_in_words": "one thousand five hundred",
        "transfer_reason": "Invoice 2024-117",
        "transfer_type": "international",
    }
    data.update(overrides)
    return data


@pytest.fixture
def transfer_data():
    return make_transfer_data


@pytest.fixture
def large_amount():
    return str(settings.completion_threshold_amount + Decimal("1"))
