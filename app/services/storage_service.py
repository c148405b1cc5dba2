# =====================================================
# FILE: app/services/storage_service.py
# Upload storage on the local filesystem
# =====================================================

import logging
import uuid
from pathlib import Path
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class FileStorage:
    """Stores uploaded bytes under a base directory"""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.UPLOAD_DIR)

    def save(self, content: bytes, original_name: Optional[str] = None, folder: str = "documents") -> str:
        target_dir = self.base_dir / folder
        target_dir.mkdir(parents=True, exist_ok=True)

        suffix = Path(original_name).suffix.lower() if original_name else ""
        path = target_dir / f"{uuid.uuid4().hex}{suffix}"
        path.write_bytes(content)

        logger.info(f"Stored upload {original_name or ''} -> {path} ({len(content)} bytes)")
        return str(path)

    def delete(self, path: Optional[str]) -> bool:
        if not path:
            return False
        target = Path(path)
        if target.exists():
            target.unlink()
            logger.info(f"Removed stored file {path}")
            return True
        logger.warning(f"Stored file already missing: {path}")
        return False
