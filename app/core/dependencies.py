# =====================================================
# FILE: app/core/dependencies.py
# FastAPI dependencies: current actor and service collaborators
# =====================================================

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.core.database import get_db
from app.models.user import User
from app.services.content_extractor import build_content_extractor
from app.services.ledger_service import LedgerClient, get_ledger_client
from app.services.storage_service import FileStorage
from app.services.validation_service import IdentityDocumentValidator

logger = logging.getLogger(__name__)


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the acting user. Authentication happens upstream; the
    gateway forwards the authenticated id in the X-User-Id header.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if not x_user_id or not x_user_id.isdigit():
        raise credentials_exception

    user = db.query(User).filter(User.id == int(x_user_id)).first()
    if user is None or not user.is_active:
        logger.warning(f"Rejected request for unknown or inactive user {x_user_id}")
        raise credentials_exception
    return user


def get_ledger() -> LedgerClient:
    return get_ledger_client()


def get_storage() -> FileStorage:
    return FileStorage()


def get_validator() -> IdentityDocumentValidator:
    return IdentityDocumentValidator(build_content_extractor())
