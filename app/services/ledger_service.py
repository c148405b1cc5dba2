# =====================================================
# FILE: app/services/ledger_service.py
# Attestation Ledger: append-only, hash-chained event log
# =====================================================

import hashlib
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional, Union

import requests
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import LedgerUnavailable
from app.models.ledger import LedgerEntry
from app.utils.datetime_helpers import utcnow, format_datetime_to_iso

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

ENTITY_IDENTITY_VERIFICATION = "identity_verification"
ENTITY_DOCUMENT_SIGNATURE = "document_signature"


def compute_hash(content: Union[str, bytes, dict, list]) -> str:
    """
    Compute SHA-256 hash of content
    Handles bytes, strings, dicts and lists (canonical JSON)
    """
    if isinstance(content, bytes):
        return hashlib.sha256(content).hexdigest()
    if isinstance(content, (dict, list)):
        content = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
    elif not isinstance(content, str):
        content = str(content)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class AttestationRequest:
    entity_type: str
    entity_id: str
    payload_hash: str
    submitter: str


@dataclass(frozen=True)
class LedgerReceipt:
    receipt_id: str
    sequence: int
    content_hash: str
    recorded_at: Optional[str] = None


def _chain_hash(sequence: int, request: AttestationRequest, previous_hash: str, recorded_at: str) -> str:
    return compute_hash({
        "sequence": sequence,
        "entity_type": request.entity_type,
        "entity_id": request.entity_id,
        "payload_hash": request.payload_hash,
        "submitter": request.submitter,
        "previous_hash": previous_hash,
        "recorded_at": recorded_at,
    })


class AttestationLedger(ABC):
    """Narrow contract the signing workflow depends on."""

    name = "abstract"

    @abstractmethod
    def append(self, request: AttestationRequest) -> LedgerReceipt:
        """Record one attestation; raise on failure."""

    def get_network_status(self) -> Dict[str, Any]:
        return {"connected": True, "backend": self.name}


class InMemoryLedger(AttestationLedger):
    """
    Process-local hash chain. Used for development and tests.
    """

    name = "memory"

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[Dict[str, Any]] = []

    def append(self, request: AttestationRequest) -> LedgerReceipt:
        with self._lock:
            sequence = len(self._entries) + 1
            previous_hash = self._entries[-1]["content_hash"] if self._entries else GENESIS_HASH
            recorded_at = format_datetime_to_iso(utcnow())
            content_hash = _chain_hash(sequence, request, previous_hash, recorded_at)
            receipt_id = f"tx_{uuid.uuid4().hex[:16]}"

            self._entries.append({
                "sequence": sequence,
                "receipt_id": receipt_id,
                "entity_type": request.entity_type,
                "entity_id": request.entity_id,
                "payload_hash": request.payload_hash,
                "submitter": request.submitter,
                "previous_hash": previous_hash,
                "content_hash": content_hash,
                "recorded_at": recorded_at,
            })

        logger.info(f"[MEMORY] Attestation #{sequence} {request.entity_type}:{request.entity_id} TX: {receipt_id}")
        return LedgerReceipt(receipt_id, sequence, content_hash, recorded_at)

    def entries(self, entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                dict(e) for e in self._entries
                if (entity_type is None or e["entity_type"] == entity_type)
                and (entity_id is None or e["entity_id"] == entity_id)
            ]

    def verify_chain(self) -> bool:
        """Recompute every link; False if any entry was altered."""
        with self._lock:
            previous_hash = GENESIS_HASH
            for entry in self._entries:
                request = AttestationRequest(
                    entry["entity_type"], entry["entity_id"],
                    entry["payload_hash"], entry["submitter"]
                )
                expected = _chain_hash(entry["sequence"], request, previous_hash, entry["recorded_at"])
                if entry["previous_hash"] != previous_hash or entry["content_hash"] != expected:
                    logger.warning(f"Ledger chain broken at sequence {entry['sequence']}")
                    return False
                previous_hash = entry["content_hash"]
            return True

    def get_network_status(self) -> Dict[str, Any]:
        return {
            "connected": True,
            "backend": self.name,
            "records_count": len(self._entries),
        }


class DatabaseLedger(AttestationLedger):
    """
    Hash chain persisted in the ledger_entries table.
    Appends are serialized in-process; the primary key on sequence
    rejects a concurrent writer from another process.
    """

    name = "database"

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._lock = threading.Lock()

    def append(self, request: AttestationRequest) -> LedgerReceipt:
        with self._lock:
            db = self._session_factory()
            try:
                last = db.query(LedgerEntry).order_by(LedgerEntry.sequence.desc()).first()
                sequence = (last.sequence + 1) if last else 1
                previous_hash = last.content_hash if last else GENESIS_HASH
                now = utcnow()
                recorded_at = format_datetime_to_iso(now)
                content_hash = _chain_hash(sequence, request, previous_hash, recorded_at)
                receipt_id = f"tx_{uuid.uuid4().hex[:16]}"

                db.add(LedgerEntry(
                    sequence=sequence,
                    receipt_id=receipt_id,
                    entity_type=request.entity_type,
                    entity_id=request.entity_id,
                    payload_hash=request.payload_hash,
                    submitter=request.submitter,
                    previous_hash=previous_hash,
                    content_hash=content_hash,
                    body=json.dumps(asdict(request), sort_keys=True),
                    recorded_at=now,
                ))
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        logger.info(f"[DB] Attestation #{sequence} {request.entity_type}:{request.entity_id} TX: {receipt_id}")
        return LedgerReceipt(receipt_id, sequence, content_hash, recorded_at)

    def verify_chain(self) -> bool:
        db = self._session_factory()
        try:
            previous_hash = GENESIS_HASH
            for entry in db.query(LedgerEntry).order_by(LedgerEntry.sequence).all():
                request = AttestationRequest(entry.entity_type, entry.entity_id, entry.payload_hash, entry.submitter)
                expected = _chain_hash(
                    entry.sequence, request, previous_hash, format_datetime_to_iso(entry.recorded_at)
                )
                if entry.previous_hash != previous_hash or entry.content_hash != expected:
                    logger.warning(f"Ledger chain broken at sequence {entry.sequence}")
                    return False
                previous_hash = entry.content_hash
            return True
        finally:
            db.close()


class HttpLedger(AttestationLedger):
    """
    Client for an external ledger gateway.
    POST {base_url}/attestations -> {receipt_id, sequence, content_hash}
    """

    name = "http"

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    def append(self, request: AttestationRequest) -> LedgerReceipt:
        try:
            response = self.session.post(
                f"{self.base_url}/attestations",
                json={
                    "entityType": request.entity_type,
                    "entityId": request.entity_id,
                    "payloadHash": request.payload_hash,
                    "submitterIdentity": request.submitter,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise LedgerUnavailable(f"Ledger gateway error: {e}") from e

        try:
            return LedgerReceipt(
                receipt_id=str(body["receiptId"]),
                sequence=int(body["sequence"]),
                content_hash=str(body["contentHash"]),
                recorded_at=body.get("recordedAt"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerUnavailable(f"Malformed ledger receipt: {body!r}") from e

    def get_network_status(self) -> Dict[str, Any]:
        try:
            response = self.session.get(f"{self.base_url}/status", timeout=self.timeout)
            return {"connected": response.ok, "backend": self.name, "url": self.base_url}
        except requests.RequestException as e:
            logger.warning(f"Ledger gateway status check failed: {e}")
            return {"connected": False, "backend": self.name, "url": self.base_url}


class LedgerClient:
    """
    Blocking, time-bounded front for any ledger backend.
    Every backend failure or timeout surfaces as LedgerUnavailable.

    The worker pool is per client.
    """

    def __init__(self, backend: AttestationLedger, timeout: float = 10.0, max_workers: int = 8):
        self.backend = backend
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"ledger-{backend.name}",
        )

    def close(self):
        """Release the worker pool without waiting for calls still running"""
        self._executor.shutdown(wait=False)

    def record(
        self,
        entity_type: str,
        entity_id: str,
        payload: Union[str, bytes, dict, list],
        submitter: Union[str, int],
    ) -> LedgerReceipt:
        request = AttestationRequest(
            entity_type=entity_type,
            entity_id=str(entity_id),
            payload_hash=compute_hash(payload),
            submitter=str(submitter),
        )

        future = self._executor.submit(self.backend.append, request)
        try:
            receipt = future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            future.cancel()
            logger.error(f"Ledger write timed out after {self.timeout}s ({entity_type}:{entity_id})")
            raise LedgerUnavailable(f"Ledger did not acknowledge within {self.timeout} seconds") from e
        except LedgerUnavailable:
            logger.error(f"Ledger unavailable ({entity_type}:{entity_id})")
            raise
        except Exception as e:
            logger.error(f"Ledger write failed ({entity_type}:{entity_id}): {str(e)}")
            raise LedgerUnavailable(f"Ledger write failed: {e}") from e

        logger.info(f"Attested {entity_type}:{entity_id} seq={receipt.sequence} hash={receipt.content_hash[:16]}...")
        return receipt

    def get_network_status(self) -> Dict[str, Any]:
        return self.backend.get_network_status()


def build_ledger_client(session_factory: Optional[Callable[[], Session]] = None) -> LedgerClient:
    """Create the configured ledger backend"""
    backend_name = settings.LEDGER_BACKEND.lower()

    if backend_name == "http":
        if not settings.LEDGER_URL:
            raise ValueError("LEDGER_URL must be set when LEDGER_BACKEND=http")
        backend = HttpLedger(settings.LEDGER_URL, settings.LEDGER_API_KEY, settings.LEDGER_TIMEOUT_SECONDS)
    elif backend_name == "database":
        if session_factory is None:
            from app.core.database import SessionLocal
            session_factory = SessionLocal
        backend = DatabaseLedger(session_factory)
    elif backend_name == "memory":
        backend = InMemoryLedger()
    else:
        raise ValueError(f"Unknown LEDGER_BACKEND: {settings.LEDGER_BACKEND}")

    logger.info(f"Attestation ledger initialized ({backend.name.upper()})")
    return LedgerClient(backend, timeout=settings.LEDGER_TIMEOUT_SECONDS)


_ledger_client: Optional[LedgerClient] = None
_ledger_lock = threading.Lock()


def get_ledger_client() -> LedgerClient:
    """Process-wide ledger handle (FastAPI dependency)"""
    global _ledger_client
    with _ledger_lock:
        if _ledger_client is None:
            _ledger_client = build_ledger_client()
        return _ledger_client


def close_ledger_client():
    """Shut down the process-wide ledger handle, if one was created"""
    global _ledger_client
    with _ledger_lock:
        if _ledger_client is not None:
            _ledger_client.close()
            _ledger_client = None
