# =====================================================
# FILE: app/core/config.py
# Application Settings (environment / .env driven)
# =====================================================

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "SignLedger"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./signledger.db"
    DB_ECHO: bool = False
    DB_POOL_PRE_PING: bool = True

    # Uploads
    UPLOAD_DIR: str = "uploads"
    MAX_FILE_SIZE: int = 10 * 1024 * 1024
    ALLOWED_UPLOAD_TYPES: List[str] = [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "application/pdf",
    ]

    # OCR / identity document validation
    OCR_ENABLED: bool = True
    TESSERACT_CMD: Optional[str] = None
    OCR_LANGUAGE: str = "eng"
    OCR_MAX_DIMENSION: int = 2000
    OCR_BINARIZE_THRESHOLD: int = 128
    OCR_PDF_DPI: int = 300
    VALIDATION_THRESHOLD: float = 0.70

    # Attestation ledger
    LEDGER_BACKEND: str = "memory"  # memory | database | http
    LEDGER_URL: Optional[str] = None
    LEDGER_API_KEY: Optional[str] = None
    LEDGER_TIMEOUT_SECONDS: float = 10.0

    # Signing workflow
    SIGNATURE_MAX_AGE_SECONDS: int = 900
    DOCUMENT_DEFAULT_EXPIRY_DAYS: Optional[int] = None
    EXPIRY_CHECK_INTERVAL_MINUTES: int = 15
    SCHEDULER_ENABLED: bool = True


settings = Settings()
