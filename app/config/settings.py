from decimal import Decimal
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App Info
    app_name: str = "Transfer Approval API"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str
    auto_create_tables: bool = True
    db_pool_size: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_lock_timeout_ms: int = Field(
        default=10000,
        description="Max time a transition waits for a transfer row lock (PostgreSQL)"
    )
    db_idle_in_transaction_timeout_ms: int = Field(
        default=60000,
        description="Max time a connection may hold an open transaction idle (PostgreSQL)"
    )

    # Security
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 480  # 8 hours
    refresh_token_expire_days: int = 7
    refresh_cookie_name: str = "refresh_token"
    refresh_cookie_secure: bool = False
    refresh_cookie_samesite: str = "lax"
    refresh_cookie_domain: Optional[str] = None

    # Documents
    upload_dir: str = "uploads"
    max_document_size: int = 10 * 1024 * 1024  # 10MB
    max_documents_per_request: int = 10
    allowed_document_extensions: set = {".pdf", ".jpg", ".jpeg", ".png", ".docx"}

    # Workflow
    completion_threshold_amount: Decimal = Field(
        default=Decimal("10000000"),
        description="Amount from which completion requires supporting documents"
    )

    # CORS
    allowed_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_max_age: Optional[int] = 3600

    class Config:
        env_file = ".env"
        case_sensitive = False

settings = Settings()
