import hashlib
import os
from datetime import timedelta

import pytest

from app.core.exceptions import DocumentNotFound, InvalidState, NotOwner, Unauthorized, ValidationFailed
from app.models.document import DocumentSigner, DocumentStatus
from app.services.audit_service import AuditService
from app.services.document_service import DocumentService, SignerAuthorization
from app.services.signature_service import SignatureService
from app.utils.datetime_helpers import utcnow


def create(documents, users, **overrides):
    args = dict(
        owner_id=users["owner"].id,
        content=b"%PDF-1.4 lease",
        metadata={"title": "Lease"},
        required_signers=[users["alice"].id],
        file_name="lease.pdf",
        file_type="application/pdf",
    )
    args.update(overrides)
    return documents.create(**args)


def test_create_starts_in_draft(draft_document, users):
    assert draft_document.status == DocumentStatus.DRAFT.value
    assert draft_document.content_hash == hashlib.sha256(b"%PDF-1.4 service agreement").hexdigest()
    assert draft_document.submitted_at is None
    assert draft_document.signed_at is None
    assert draft_document.required_signer_ids == [users["alice"].id, users["bob"].id]
    assert draft_document.optional_signer_ids == [users["carol"].id]
    assert draft_document.doc_metadata == {}
    assert os.path.exists(draft_document.file_path)


@pytest.mark.parametrize("overrides", [
    {"metadata": {"title": "  "}},
    {"content": b""},
    {"file_type": "application/x-msdownload"},
])
def test_create_rejects_bad_input(documents, users, overrides):
    with pytest.raises(ValidationFailed):
        create(documents, users, **overrides)


def test_owner_cannot_be_listed_as_signer(documents, users):
    with pytest.raises(ValidationFailed):
        create(documents, users, required_signers=[users["owner"].id])
    with pytest.raises(ValidationFailed):
        create(documents, users, optional_signers=[users["owner"].id])


def test_signer_lists_must_be_unique_and_disjoint(documents, users):
    alice = users["alice"].id
    with pytest.raises(ValidationFailed):
        create(documents, users, required_signers=[alice, alice])
    with pytest.raises(ValidationFailed):
        create(documents, users, required_signers=[alice], optional_signers=[alice])


def test_unknown_signer_rejected(documents, users):
    with pytest.raises(ValidationFailed):
        create(documents, users, required_signers=[9999])


def test_submit_state_machine(documents, draft_document, users):
    with pytest.raises(NotOwner):
        documents.submit(draft_document.id, users["alice"].id)

    document = documents.submit(draft_document.id, users["owner"].id)
    assert document.status == DocumentStatus.PENDING.value
    assert document.submitted_at is not None

    with pytest.raises(InvalidState):
        documents.submit(draft_document.id, users["owner"].id)


def test_submit_requires_a_required_signer(documents, users):
    document = create(documents, users, required_signers=[], optional_signers=[users["carol"].id])

    with pytest.raises(ValidationFailed):
        documents.submit(document.id, users["owner"].id)


def test_submit_unknown_document(documents, users):
    with pytest.raises(DocumentNotFound):
        documents.submit("no-such-document", users["owner"].id)


def test_delete_draft_removes_document_and_file(documents, draft_document, users):
    file_path = draft_document.file_path

    with pytest.raises(NotOwner):
        documents.delete(draft_document.id, users["bob"].id)

    documents.delete(draft_document.id, users["owner"].id)

    assert not os.path.exists(file_path)
    with pytest.raises(DocumentNotFound):
        documents.get_document(draft_document.id)


def test_pending_document_cannot_be_deleted(documents, pending_document, users):
    with pytest.raises(InvalidState):
        documents.delete(pending_document.id, users["owner"].id)
    assert os.path.exists(pending_document.file_path)


def test_cancel_only_from_pending(documents, draft_document, users):
    with pytest.raises(InvalidState):
        documents.cancel(draft_document.id, users["owner"].id)

    documents.submit(draft_document.id, users["owner"].id)
    with pytest.raises(NotOwner):
        documents.cancel(draft_document.id, users["alice"].id)

    document = documents.cancel(draft_document.id, users["owner"].id, reason="terms changed")
    assert document.status == DocumentStatus.CANCELLED.value
    assert document.cancelled_at is not None

    with pytest.raises(InvalidState):
        documents.submit(draft_document.id, users["owner"].id)


def test_expire_overdue(documents, users):
    overdue = create(documents, users, expires_at=utcnow() - timedelta(hours=1))
    current = create(documents, users, expires_at=utcnow() + timedelta(days=3))
    draft = create(documents, users, expires_at=utcnow() - timedelta(hours=1))
    documents.submit(overdue.id, users["owner"].id)
    documents.submit(current.id, users["owner"].id)

    expired = documents.expire_overdue(utcnow())

    assert expired == [overdue.id]
    assert documents.get_document(overdue.id).status == DocumentStatus.EXPIRED.value
    assert documents.get_document(current.id).status == DocumentStatus.PENDING.value
    assert documents.get_document(draft.id).status == DocumentStatus.DRAFT.value


def test_expired_documents_are_terminal(documents, pending_document, users):
    documents.expire(pending_document.id)

    with pytest.raises(InvalidState):
        documents.cancel(pending_document.id, users["owner"].id)
    with pytest.raises(InvalidState):
        documents.expire(pending_document.id)


def test_evaluate_completion_is_idempotent(documents, pending_document):
    assert documents.evaluate_completion(pending_document.id) == DocumentStatus.PENDING.value
    assert documents.evaluate_completion(pending_document.id) == DocumentStatus.PENDING.value


def test_evaluate_completion_leaves_signed_document_unchanged(db, documents, ledger, pending_document, users,
                                                              make_signature):
    signatures = SignatureService(db, ledger, documents)
    for name in ("alice", "bob"):
        signer_id = users[name].id
        signatures.sign(pending_document.id, signer_id, make_signature(pending_document, signer_id))
    db.expire_all()
    document = documents.get_document(pending_document.id)
    status, signed_at = document.status, document.signed_at
    assert status == DocumentStatus.SIGNED.value

    assert documents.evaluate_completion(pending_document.id) == status
    assert documents.evaluate_completion(pending_document.id) == status

    db.expire_all()
    document = documents.get_document(pending_document.id)
    assert document.status == status
    assert document.signed_at == signed_at


def test_owner_is_never_authorized_even_when_listed(db, draft_document, users):
    # bypasses create() validation on purpose
    draft_document.signers.append(
        DocumentSigner(user_id=users["owner"].id, role="required", position=99)
    )
    db.commit()

    assert users["owner"].id in draft_document.required_signer_ids
    assert DocumentService.authorize_signer(draft_document, users["owner"].id) == SignerAuthorization.UNAUTHORIZED


def test_authorize_signer_roles(draft_document, users):
    assert DocumentService.authorize_signer(draft_document, users["alice"].id) == SignerAuthorization.REQUIRED
    assert DocumentService.authorize_signer(draft_document, users["carol"].id) == SignerAuthorization.OPTIONAL
    assert DocumentService.authorize_signer(draft_document, users["mallory"].id) == SignerAuthorization.UNAUTHORIZED


def test_update_signers_only_in_draft(documents, draft_document, users):
    document = documents.update(
        draft_document.id, users["owner"].id,
        title="Service Agreement v2",
        required_signers=[users["alice"].id],
    )
    assert document.title == "Service Agreement v2"
    assert document.required_signer_ids == [users["alice"].id]

    documents.submit(draft_document.id, users["owner"].id)
    with pytest.raises(InvalidState):
        documents.update(draft_document.id, users["owner"].id, required_signers=[users["bob"].id])

    document = documents.update(draft_document.id, users["owner"].id, description="Final")
    assert document.description == "Final"


def test_get_for_actor(documents, draft_document, users):
    assert documents.get_for_actor(draft_document.id, users["carol"].id).id == draft_document.id
    with pytest.raises(Unauthorized):
        documents.get_for_actor(draft_document.id, users["mallory"].id)


def test_pending_query_lists_only_unsigned_signers(documents, pending_document, users):
    assert [d.id for d in documents.list_pending_for_signer(users["alice"].id)] == [pending_document.id]
    assert [d.id for d in documents.list_pending_for_signer(users["carol"].id)] == [pending_document.id]
    assert documents.list_pending_for_signer(users["mallory"].id) == []
    assert documents.list_pending_for_signer(users["owner"].id) == []


def test_draft_is_not_pending_for_anyone(documents, draft_document, users):
    assert documents.list_pending_for_signer(users["alice"].id) == []


def test_summary_and_completion(documents, pending_document, users):
    summary = documents.summary(pending_document, users["bob"].id)

    assert summary["status"] == "pending"
    assert summary["completion_percentage"] == 0.0
    assert summary["user_role"] == "required_signer"
    assert documents.summary(pending_document, users["owner"].id)["user_role"] == "owner"


def test_transitions_are_audited(db, pending_document):
    actions = [e.action_type for e in AuditService(db).history("document", pending_document.id)]
    assert actions == ["document_created", "document_pending"]
