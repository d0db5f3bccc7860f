from __future__ import annotations

import pytest

from conftest import PROJECT_ID
from report_workflow.domain import AttachmentType
from report_workflow.errors import AuthorizationError, DependencyFailure, NotFoundError, ValidationError


@pytest.fixture
def draft(lifecycle, beneficiary, draft_fields) -> dict:
    return lifecycle.create_draft(beneficiary, PROJECT_ID, draft_fields)


def _attach(lifecycle, actor, report_id: str, filename: str, kind: str = "comprovante") -> dict:
    return lifecycle.add_attachment(
        report_id,
        actor,
        attachment_type=kind,
        filename=filename,
        content=f"bytes of {filename}".encode(),
        content_type="application/pdf",
    )


def test_add_attachment_stores_blob_and_metadata(lifecycle, beneficiary, blob_store, draft):
    saved = lifecycle.add_attachment(
        draft["id"],
        beneficiary,
        attachment_type=AttachmentType.PROJECT_PHOTO,
        filename="site visit.jpg",
        content=b"\xff\xd8jpeg",
        content_type="image/jpeg",
    )

    assert saved["type"] == "foto_projeto"
    assert saved["uploaded_by"] == beneficiary.id
    assert saved["url"] == f"object://local/attachments/reports/{draft['id']}/{saved['id']}/site_visit.jpg"
    assert blob_store.get_object(storage_uri=saved["url"]) == b"\xff\xd8jpeg"
    assert lifecycle.record_store.list_attachments(draft["id"]) == [saved]


@pytest.mark.parametrize(
    ("kwargs", "field"),
    [
        ({"attachment_type": "selfie"}, "type"),
        ({"filename": "  "}, "filename"),
        ({"content": b""}, "file"),
        ({"content": b"x" * 1025}, "file"),
    ],
)
def test_add_attachment_validates_input(lifecycle, beneficiary, draft, kwargs, field):
    params = {"attachment_type": "comprovante", "filename": "r.pdf", "content": b"pdf", **kwargs}
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.add_attachment(draft["id"], beneficiary, **params)
    assert exc_info.value.field == field
    assert lifecycle.record_store.list_attachments(draft["id"]) == []


def test_add_attachment_only_on_own_draft(lifecycle, beneficiary, other_beneficiary, draft):
    with pytest.raises(AuthorizationError) as not_owner:
        _attach(lifecycle, other_beneficiary, draft["id"], "r.pdf")
    assert not_owner.value.reason == "not_owner"

    lifecycle.submit(draft["id"], beneficiary)
    with pytest.raises(AuthorizationError) as wrong_status:
        _attach(lifecycle, beneficiary, draft["id"], "late.pdf")
    assert wrong_status.value.reason == "wrong_status"


def test_attachment_content_is_readable_by_report_readers(lifecycle, beneficiary, other_beneficiary, admin, draft):
    saved = _attach(lifecycle, beneficiary, draft["id"], "receipt.pdf")

    for reader in (beneficiary, admin):
        attachment, content = lifecycle.get_attachment_content(draft["id"], saved["id"], reader)
        assert attachment == saved
        assert content == b"bytes of receipt.pdf"

    with pytest.raises(AuthorizationError) as exc_info:
        lifecycle.get_attachment_content(draft["id"], saved["id"], other_beneficiary)
    assert exc_info.value.reason == "not_owner"


def test_attachment_content_missing_row_or_blob_is_not_found(lifecycle, beneficiary, blob_store, draft):
    saved = _attach(lifecycle, beneficiary, draft["id"], "receipt.pdf")

    with pytest.raises(NotFoundError) as unknown:
        lifecycle.get_attachment_content(draft["id"], "att_missing", beneficiary)
    assert unknown.value.code == "ATTACHMENT_NOT_FOUND"

    blob_store.delete_object(storage_uri=saved["url"])
    with pytest.raises(NotFoundError) as lost_blob:
        lifecycle.get_attachment_content(draft["id"], saved["id"], beneficiary)
    assert lost_blob.value.code == "ATTACHMENT_NOT_FOUND"


def test_failed_metadata_insert_removes_uploaded_blob(
    lifecycle, record_store, beneficiary, draft, tmp_path, monkeypatch
):
    def broken_insert(_attachment):
        raise DependencyFailure(dependency="record_store", message="record store unavailable")

    monkeypatch.setattr(record_store, "insert_attachment", broken_insert)

    with pytest.raises(DependencyFailure):
        _attach(lifecycle, beneficiary, draft["id"], "receipt.pdf")

    assert list((tmp_path / "object_store").rglob("receipt.pdf")) == []


def test_delete_aborts_on_blob_failure_and_retry_finishes(
    lifecycle, record_store, beneficiary, blob_store, draft, monkeypatch
):
    first = _attach(lifecycle, beneficiary, draft["id"], "one.pdf")
    second = _attach(lifecycle, beneficiary, draft["id"], "two.pdf")
    original_delete = blob_store.delete_object

    def flaky_delete(*, storage_uri: str) -> bool:
        if storage_uri == second["url"]:
            raise DependencyFailure(dependency="blob_store", message="attachment removal failed")
        return original_delete(storage_uri=storage_uri)

    monkeypatch.setattr(blob_store, "delete_object", flaky_delete)

    with pytest.raises(DependencyFailure) as exc_info:
        lifecycle.delete_report(draft["id"], beneficiary)
    assert exc_info.value.details == {"dependency": "blob_store"}

    # The report row survives; the attachment removed before the failure stays removed.
    assert lifecycle.get_report(draft["id"], beneficiary)["status"] == "rascunho"
    assert [a["id"] for a in record_store.list_attachments(draft["id"])] == [second["id"]]
    with pytest.raises(FileNotFoundError):
        blob_store.get_object(storage_uri=first["url"])

    monkeypatch.setattr(blob_store, "delete_object", original_delete)
    result = lifecycle.delete_report(draft["id"], beneficiary)

    assert result["attachments_removed"] == 1
    assert record_store.get_report(draft["id"]) is None
    assert record_store.list_attachments(draft["id"]) == []


def test_delete_tolerates_blob_already_gone(lifecycle, record_store, beneficiary, blob_store, draft):
    attachment = _attach(lifecycle, beneficiary, draft["id"], "gone.pdf")
    assert blob_store.delete_object(storage_uri=attachment["url"]) is True

    result = lifecycle.delete_report(draft["id"], beneficiary)

    assert result["attachments_removed"] == 1
    assert record_store.get_report(draft["id"]) is None


def test_delete_removes_comments_left_on_draft(lifecycle, record_store, beneficiary, admin, draft):
    lifecycle.add_comment(draft["id"], admin, "start with photos")

    result = lifecycle.delete_report(draft["id"], beneficiary)

    assert result["comments_removed"] == 1
    assert record_store.comments == []
