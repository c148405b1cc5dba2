import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["OCR_ENABLED"] = "false"
os.environ["LEDGER_BACKEND"] = "memory"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="signledger_uploads_")

import base64
import hashlib
import time

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from sqlalchemy.orm import sessionmaker

from app.core.database import build_engine, init_db
from app.models.user import User
from app.services.document_service import DocumentService
from app.services.ledger_service import InMemoryLedger, LedgerClient
from app.services.signature_service import SignaturePayload, build_signing_payload
from app.services.storage_service import FileStorage


@pytest.fixture
def engine(tmp_path):
    # file database so worker threads see each other's commits
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return FileStorage(str(tmp_path / "uploads"))


@pytest.fixture
def ledger_backend():
    return InMemoryLedger()


@pytest.fixture
def ledger(ledger_backend):
    client = LedgerClient(ledger_backend, timeout=2.0)
    yield client
    client.close()


@pytest.fixture
def documents(db, storage):
    return DocumentService(db, storage)


@pytest.fixture
def signing_keys():
    """user id -> Ed25519 private key"""
    return {}


@pytest.fixture
def make_user(db, signing_keys):
    def _make_user(email, first_name="Test", last_name="User", with_key=True):
        private_key = Ed25519PrivateKey.generate()
        public_hex = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            signing_public_key=public_hex if with_key else None,
        )
        db.add(user)
        db.commit()
        signing_keys[user.id] = private_key
        return user
    return _make_user


@pytest.fixture
def users(make_user):
    return {
        "owner": make_user("owner@example.com", "Olivia", "Owner"),
        "alice": make_user("alice@example.com", "Alice", "Signer"),
        "bob": make_user("bob@example.com", "Bob", "Signer"),
        "carol": make_user("carol@example.com", "Carol", "Optional"),
        "mallory": make_user("mallory@example.com", "Mallory", "Outsider"),
    }


@pytest.fixture
def make_signature(signing_keys):
    """Signs the canonical payload for (document, signer) with the signer's key"""
    def _make_signature(document, signer_id, timestamp=None, key=None, include_hash=False):
        timestamp = int(timestamp if timestamp is not None else time.time() * 1000)
        message = build_signing_payload(document.id, document.content_hash, signer_id, timestamp)
        private_key = key or signing_keys[signer_id]
        signature = base64.b64encode(private_key.sign(message.encode("utf-8"))).decode("ascii")
        signature_hash = None
        if include_hash:
            signature_hash = hashlib.sha256(message.encode("utf-8")).hexdigest()
        return SignaturePayload(signature=signature, timestamp=timestamp, signature_hash=signature_hash)
    return _make_signature


@pytest.fixture
def draft_document(documents, users):
    return documents.create(
        owner_id=users["owner"].id,
        content=b"%PDF-1.4 service agreement",
        metadata={"title": "Service Agreement", "description": "Annual contract"},
        required_signers=[users["alice"].id, users["bob"].id],
        optional_signers=[users["carol"].id],
        file_name="agreement.pdf",
        file_type="application/pdf",
    )


@pytest.fixture
def pending_document(documents, draft_document, users):
    return documents.submit(draft_document.id, users["owner"].id)
