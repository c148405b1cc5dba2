import threading
import time

import pytest
import requests

from app.core.exceptions import LedgerUnavailable
from app.services.ledger_service import (
    ENTITY_DOCUMENT_SIGNATURE,
    GENESIS_HASH,
    AttestationLedger,
    AttestationRequest,
    DatabaseLedger,
    HttpLedger,
    InMemoryLedger,
    LedgerClient,
    compute_hash,
)


class SlowLedger(AttestationLedger):
    name = "slow"

    def append(self, request):
        time.sleep(0.5)
        raise AssertionError("should have timed out first")


class ExplodingLedger(AttestationLedger):
    name = "exploding"

    def append(self, request):
        raise RuntimeError("connection reset")


class HangingLedger(AttestationLedger):
    name = "hanging"

    def __init__(self):
        self.release = threading.Event()

    def append(self, request):
        self.release.wait(timeout=5)
        raise ConnectionError("gateway never answered")


class FakeResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code
        self.ok = status_code < 400

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json, timeout))
        if self.error:
            raise self.error
        return self.response


def request(entity_id="doc-1:2"):
    return AttestationRequest(ENTITY_DOCUMENT_SIGNATURE, entity_id, compute_hash("payload"), "2")


def test_compute_hash_is_canonical_for_dicts():
    assert compute_hash({"b": 1, "a": 2}) == compute_hash({"a": 2, "b": 1})
    assert compute_hash("abc") == compute_hash(b"abc")


def test_memory_ledger_chains_entries():
    ledger = InMemoryLedger()
    receipts = [ledger.append(request(f"doc-{i}:2")) for i in range(3)]

    assert [r.sequence for r in receipts] == [1, 2, 3]
    assert len({r.receipt_id for r in receipts}) == 3
    entries = ledger.entries()
    assert entries[0]["previous_hash"] == GENESIS_HASH
    assert entries[1]["previous_hash"] == entries[0]["content_hash"]
    assert ledger.verify_chain()


def test_memory_ledger_detects_tampering():
    ledger = InMemoryLedger()
    for i in range(3):
        ledger.append(request(f"doc-{i}:2"))

    ledger._entries[1]["payload_hash"] = compute_hash("forged")

    assert not ledger.verify_chain()


def test_memory_ledger_filters_entries():
    ledger = InMemoryLedger()
    ledger.append(request("doc-1:2"))
    ledger.append(AttestationRequest("identity_verification", "2", compute_hash("x"), "2"))

    assert len(ledger.entries(entity_type=ENTITY_DOCUMENT_SIGNATURE)) == 1
    assert len(ledger.entries(entity_id="2")) == 1


def test_database_ledger_chains_rows(session_factory):
    ledger = DatabaseLedger(session_factory)
    first = ledger.append(request("doc-1:2"))
    second = ledger.append(request("doc-1:3"))

    assert (first.sequence, second.sequence) == (1, 2)
    assert ledger.verify_chain()


def test_client_hashes_payload_and_returns_receipt():
    backend = InMemoryLedger()
    client = LedgerClient(backend, timeout=1.0)

    receipt = client.record(ENTITY_DOCUMENT_SIGNATURE, "doc-1:2", {"signature": "abc"}, submitter=2)

    entry = backend.entries()[0]
    assert entry["payload_hash"] == compute_hash({"signature": "abc"})
    assert entry["submitter"] == "2"
    assert receipt.content_hash == entry["content_hash"]


def test_client_times_out():
    client = LedgerClient(SlowLedger(), timeout=0.05)

    with pytest.raises(LedgerUnavailable) as exc:
        client.record(ENTITY_DOCUMENT_SIGNATURE, "doc-1:2", "payload", submitter=2)
    assert exc.value.retryable


def test_hung_backend_does_not_block_other_clients():
    hanging = HangingLedger()
    stuck = LedgerClient(hanging, timeout=0.05)
    healthy = LedgerClient(InMemoryLedger(), timeout=1.0)
    try:
        # every worker of the stuck client is now busy
        for i in range(8):
            with pytest.raises(LedgerUnavailable):
                stuck.record(ENTITY_DOCUMENT_SIGNATURE, f"doc-{i}:2", "payload", submitter=2)

        receipt = healthy.record(ENTITY_DOCUMENT_SIGNATURE, "doc-9:2", "payload", submitter=2)

        assert receipt.sequence == 1
    finally:
        hanging.release.set()
        stuck.close()
        healthy.close()


def test_client_maps_backend_errors():
    client = LedgerClient(ExplodingLedger(), timeout=1.0)

    with pytest.raises(LedgerUnavailable):
        client.record(ENTITY_DOCUMENT_SIGNATURE, "doc-1:2", "payload", submitter=2)


def test_http_ledger_posts_attestation():
    session = FakeSession(FakeResponse({"receiptId": "rcpt-9", "sequence": 41, "contentHash": "ab" * 32}))
    ledger = HttpLedger("https://ledger.example.com/", api_key="secret", timeout=3, session=session)

    receipt = ledger.append(request())

    url, body, timeout = session.posts[0]
    assert url == "https://ledger.example.com/attestations"
    assert body["entityType"] == ENTITY_DOCUMENT_SIGNATURE
    assert body["submitterIdentity"] == "2"
    assert timeout == 3
    assert session.headers["Authorization"] == "Bearer secret"
    assert (receipt.receipt_id, receipt.sequence) == ("rcpt-9", 41)


def test_http_ledger_connection_error():
    ledger = HttpLedger("https://ledger.example.com", session=FakeSession(error=requests.ConnectionError("down")))

    with pytest.raises(LedgerUnavailable):
        ledger.append(request())


def test_http_ledger_server_error():
    ledger = HttpLedger("https://ledger.example.com", session=FakeSession(FakeResponse({}, status_code=502)))

    with pytest.raises(LedgerUnavailable):
        ledger.append(request())


def test_http_ledger_malformed_receipt():
    ledger = HttpLedger("https://ledger.example.com", session=FakeSession(FakeResponse({"ok": True})))

    with pytest.raises(LedgerUnavailable):
        ledger.append(request())
