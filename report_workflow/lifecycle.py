"""Report lifecycle manager.

Owns every state change of a report: drafting, submission, review and
deletion. Each operation loads the current row, asks the access policy, and
writes with a status precondition so a concurrent transition is reported as a
conflict instead of being overwritten.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from report_workflow import policy
from report_workflow.domain import (
    CONTENT_FIELDS,
    REVIEW_DECISIONS,
    Actor,
    AttachmentType,
    ReportPeriod,
    ReportStatus,
    parse_status,
)
from report_workflow.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from report_workflow.object_storage import ObjectStorageBackend
from report_workflow.record_store import RecordStore

logger = logging.getLogger(__name__)

_PERIOD_VALUES = frozenset(x.value for x in ReportPeriod)
_ATTACHMENT_TYPE_VALUES = frozenset(x.value for x in AttachmentType)
_REQUIRED_ON_CREATE: tuple[str, ...] = ("period", "descricao_progresso", "postos_trabalho")

# Labels reported as ``target_status`` when a write that is not a status change loses a race.
EDIT_TARGET = "edit"
DELETE_TARGET = "delete"


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _enforce(
    decision: policy.PolicyDecision,
    *,
    current_status: str | None = None,
    target_status: str | None = None,
) -> None:
    if decision.allowed:
        return
    reason = decision.reason or policy.WRONG_ROLE
    logger.info("report_action_denied reason=%s target_status=%s", reason, target_status)
    if reason == policy.INVALID_TRANSITION and target_status is not None:
        raise InvalidTransitionError(current_status=current_status, target_status=target_status)
    raise AuthorizationError(reason=reason, message=decision.message or "action not permitted")


def _normalize_period(value: Any) -> str:
    raw = _enum_value(value)
    if not isinstance(raw, str) or raw not in _PERIOD_VALUES:
        raise ValidationError(
            field="period",
            message=f"period must be one of: {', '.join(sorted(_PERIOD_VALUES))}",
        )
    return raw


def _normalize_description(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field="descricao_progresso", message="descricao_progresso is required")
    return value


def _normalize_job_positions(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(field="postos_trabalho", message="postos_trabalho must be an integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError(field="postos_trabalho", message="postos_trabalho must be an integer")
    if value < 0:
        raise ValidationError(field="postos_trabalho", message="postos_trabalho must be >= 0")
    return value


def _normalize_notes(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(field="observacoes", message="observacoes must be text")
    return value if value.strip() else None


_NORMALIZERS: dict[str, Callable[[Any], Any]] = {
    "period": _normalize_period,
    "descricao_progresso": _normalize_description,
    "postos_trabalho": _normalize_job_positions,
    "observacoes": _normalize_notes,
}


def validate_content_fields(fields: dict[str, Any], *, partial: bool) -> dict[str, Any]:
    """Validate owner-editable report fields and return the normalized subset.

    With ``partial=False`` every required field must be present.
    """
    for key in fields:
        if key not in CONTENT_FIELDS:
            raise ValidationError(field=key, message=f"{key} cannot be set on a report")
    if not partial:
        for key in _REQUIRED_ON_CREATE:
            if fields.get(key) is None:
                raise ValidationError(field=key, message=f"{key} is required")
    return {key: _NORMALIZERS[key](value) for key, value in fields.items()}


class ReportLifecycleManager:
    def __init__(
        self,
        *,
        record_store: RecordStore,
        blob_store: ObjectStorageBackend,
        clock: Callable[[], str] | None = None,
        id_factory: Callable[[], str] | None = None,
        max_attachment_bytes: int | None = None,
    ) -> None:
        self._store = record_store
        self._blobs = blob_store
        self._clock = clock or _utcnow_iso
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self._max_attachment_bytes = max_attachment_bytes

    @property
    def record_store(self) -> RecordStore:
        return self._store

    def _load_report(self, report_id: str) -> dict[str, Any]:
        report = self._store.get_report(report_id)
        if report is None:
            raise NotFoundError(entity="report", entity_id=report_id)
        return report

    def _raise_write_miss(self, report_id: str, *, target_status: str) -> None:
        latest = self._store.get_report(report_id)
        if latest is None:
            raise NotFoundError(entity="report", entity_id=report_id)
        logger.info(
            "report_write_conflict report_id=%s current_status=%s target_status=%s",
            report_id,
            latest.get("status"),
            target_status,
        )
        raise InvalidTransitionError(
            current_status=latest.get("status"),
            target_status=target_status,
            reason="conflict",
        )

    def _ensure_still_draft(self, report_id: str) -> None:
        latest = self._store.get_report(report_id)
        if latest is None or latest.get("status") != ReportStatus.DRAFT.value:
            self._raise_write_miss(report_id, target_status=DELETE_TARGET)

    # Drafting

    def create_draft(self, actor: Actor, project_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        if not str(project_id or "").strip():
            raise ValidationError(field="project_id", message="project_id is required")
        decision = policy.can_create(actor, project_id, is_member=self._store.is_member(actor.id, project_id))
        # Nobody is a member of a project that does not exist.
        if decision.reason == policy.NOT_MEMBER and self._store.get_project(project_id) is None:
            raise NotFoundError(entity="project", entity_id=project_id)
        _enforce(decision)
        content = validate_content_fields(fields, partial=False)
        content.setdefault("observacoes", None)

        now = self._clock()
        report = {
            "id": self._new_id(),
            "project_id": project_id,
            "beneficiary_id": actor.id,
            **content,
            "status": ReportStatus.DRAFT.value,
            "criado_em": now,
            "atualizado_em": now,
        }
        saved = self._store.insert_report(report)
        logger.info("report_draft_created report_id=%s project_id=%s actor_id=%s", saved["id"], project_id, actor.id)
        return saved

    def create_report(
        self,
        actor: Actor,
        project_id: str,
        fields: dict[str, Any],
        *,
        submit: bool = False,
    ) -> dict[str, Any]:
        """Create a draft and optionally send it for review in the same call."""
        report = self.create_draft(actor, project_id, fields)
        if not submit:
            return report
        return self.submit(report["id"], actor)

    def update_draft(self, actor: Actor, report_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        report = self._load_report(report_id)
        _enforce(policy.can_mutate_fields(actor, report))
        if not fields:
            raise ValidationError(field="fields", message="no fields to update")
        changes = validate_content_fields(fields, partial=True)
        patch = {**changes, "atualizado_em": self._clock()}
        updated = self._store.update_report(report_id, patch, expected_status=ReportStatus.DRAFT.value)
        if updated is None:
            self._raise_write_miss(report_id, target_status=EDIT_TARGET)
        logger.info("report_draft_updated report_id=%s fields=%s", report_id, ",".join(sorted(changes)))
        return updated

    # Transitions

    def submit(self, report_id: str, actor: Actor) -> dict[str, Any]:
        report = self._load_report(report_id)
        target = ReportStatus.SUBMITTED.value
        _enforce(
            policy.can_transition(actor, report, ReportStatus.SUBMITTED),
            current_status=report.get("status"),
            target_status=target,
        )
        updated = self._store.update_report(
            report_id,
            {"status": target, "atualizado_em": self._clock()},
            expected_status=ReportStatus.DRAFT.value,
        )
        if updated is None:
            self._raise_write_miss(report_id, target_status=target)
        logger.info("report_submitted report_id=%s actor_id=%s", report_id, actor.id)
        return updated

    def review(
        self,
        report_id: str,
        actor: Actor,
        decision: ReportStatus | str,
        comment_text: str | None = None,
    ) -> dict[str, Any]:
        """Approve or reject a submitted report.

        A rejection must carry a comment. When a comment is given it is stored
        in the same store transaction as the status change, so a rejection is
        never visible without its justification.
        """
        target = parse_status(str(_enum_value(decision)))
        if target not in REVIEW_DECISIONS:
            raise ValidationError(field="decision", message="decision must be approved or rejected")
        report = self._load_report(report_id)
        _enforce(
            policy.can_transition(actor, report, target),
            current_status=report.get("status"),
            target_status=target.value,
        )
        text = (comment_text or "").strip()
        if target == ReportStatus.REJECTED and not text:
            raise ValidationError(field="comentario", message="comment required")

        now = self._clock()
        comment = None
        if text:
            comment = {
                "id": self._new_id(),
                "report_id": report_id,
                "admin_id": actor.id,
                "comentario": text,
                "criado_em": now,
            }
        result = self._store.update_report_with_comment(
            report_id,
            {"status": target.value, "atualizado_em": now},
            ReportStatus.SUBMITTED.value,
            comment,
        )
        if result is None:
            self._raise_write_miss(report_id, target_status=target.value)
        updated, saved_comment = result
        logger.info(
            "report_reviewed report_id=%s decision=%s actor_id=%s with_comment=%s",
            report_id,
            target.value,
            actor.id,
            saved_comment is not None,
        )
        return {**updated, "comment": saved_comment}

    # Comments

    def add_comment(self, report_id: str, actor: Actor, text: str) -> dict[str, Any]:
        self._load_report(report_id)
        _enforce(policy.can_comment(actor))
        body = (text or "").strip()
        if not body:
            raise ValidationError(field="comentario", message="comment required")
        comment = {
            "id": self._new_id(),
            "report_id": report_id,
            "admin_id": actor.id,
            "comentario": body,
            "criado_em": self._clock(),
        }
        saved = self._store.insert_comment(comment)
        logger.info("report_comment_added report_id=%s comment_id=%s actor_id=%s", report_id, saved["id"], actor.id)
        return saved

    def list_comments(self, report_id: str, actor: Actor) -> list[dict[str, Any]]:
        report = self._load_report(report_id)
        _enforce(policy.can_read(actor, report))
        return self._store.list_comments(report_id)

    # Attachments

    def add_attachment(
        self,
        report_id: str,
        actor: Actor,
        *,
        attachment_type: AttachmentType | str,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        report = self._load_report(report_id)
        _enforce(policy.can_attach(actor, report))
        kind = _enum_value(attachment_type)
        if kind not in _ATTACHMENT_TYPE_VALUES:
            raise ValidationError(
                field="type",
                message=f"type must be one of: {', '.join(sorted(_ATTACHMENT_TYPE_VALUES))}",
            )
        if not str(filename or "").strip():
            raise ValidationError(field="filename", message="filename is required")
        if not content:
            raise ValidationError(field="file", message="file is empty")
        if self._max_attachment_bytes is not None and len(content) > self._max_attachment_bytes:
            raise ValidationError(field="file", message=f"file exceeds {self._max_attachment_bytes} bytes")

        attachment_id = self._new_id()
        storage_uri = self._blobs.put_object(
            report_id=report_id,
            object_id=attachment_id,
            filename=filename,
            content_bytes=content,
            content_type=content_type,
        )
        attachment = {
            "id": attachment_id,
            "report_id": report_id,
            "uploaded_by": actor.id,
            "url": storage_uri,
            "type": kind,
            "criado_em": self._clock(),
        }
        try:
            saved = self._store.insert_attachment(attachment)
        except Exception:
            logger.warning("attachment_insert_failed report_id=%s uri=%s", report_id, storage_uri)
            self._blobs.delete_object(storage_uri=storage_uri)
            raise
        logger.info("report_attachment_added report_id=%s attachment_id=%s type=%s", report_id, attachment_id, kind)
        return saved

    def get_attachment_content(self, report_id: str, attachment_id: str, actor: Actor) -> tuple[dict[str, Any], bytes]:
        """Return an attachment's metadata and stored bytes to anyone who may read the report."""
        report = self._load_report(report_id)
        _enforce(policy.can_read(actor, report))
        attachment = next((x for x in self._store.list_attachments(report_id) if x.get("id") == attachment_id), None)
        if attachment is None:
            raise NotFoundError(entity="attachment", entity_id=attachment_id)
        try:
            content = self._blobs.get_object(storage_uri=str(attachment.get("url") or ""))
        except FileNotFoundError:
            logger.warning("attachment_blob_missing report_id=%s attachment_id=%s", report_id, attachment_id)
            raise NotFoundError(entity="attachment", entity_id=attachment_id) from None
        return attachment, content

    # Deletion

    def delete_report(self, report_id: str, actor: Actor) -> dict[str, Any]:
        """Remove a draft with its attachments (blob first, then metadata) and comments.

        A failing blob delete aborts the whole operation before the report row
        is touched; attachments already removed stay removed and are skipped on
        retry. The draft status is re-read before every attachment, and the
        comments go together with the row in one guarded store call, so a
        report submitted mid-delete keeps whatever it still has.
        """
        report = self._load_report(report_id)
        _enforce(policy.can_delete(actor, report))

        attachments_removed = 0
        for attachment in self._store.list_attachments(report_id):
            self._ensure_still_draft(report_id)
            url = str(attachment.get("url") or "")
            if url and not self._blobs.delete_object(storage_uri=url):
                logger.info("attachment_blob_already_absent attachment_id=%s", attachment["id"])
            if self._store.delete_attachment(attachment["id"]):
                attachments_removed += 1

        comments_removed = self._store.delete_report_with_comments(
            report_id,
            expected_status=ReportStatus.DRAFT.value,
        )
        if comments_removed is None:
            self._raise_write_miss(report_id, target_status=DELETE_TARGET)
        logger.info(
            "report_deleted report_id=%s actor_id=%s attachments=%s comments=%s",
            report_id,
            actor.id,
            attachments_removed,
            comments_removed,
        )
        return {
            "id": report_id,
            "deleted": True,
            "attachments_removed": attachments_removed,
            "comments_removed": comments_removed,
        }

    # Reads

    def get_report(self, report_id: str, actor: Actor) -> dict[str, Any]:
        report = self._load_report(report_id)
        _enforce(policy.can_read(actor, report))
        return report

    def get_report_detail(self, report_id: str, actor: Actor) -> dict[str, Any]:
        report = self.get_report(report_id, actor)
        return {
            **report,
            "project": self._store.get_project(str(report["project_id"])),
            "attachments": self._store.list_attachments(report_id),
            "comments": self._store.list_comments(report_id),
        }

    def list_reports(
        self,
        actor: Actor,
        *,
        status: str | None = None,
        period: str | None = None,
        project_id: str | None = None,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        if status is not None and parse_status(status) is None:
            raise ValidationError(field="status", message=f"unknown status: {status}")
        if period is not None:
            _normalize_period(period)
        beneficiary_id = None if actor.is_admin else actor.id
        rows = self._store.list_reports(beneficiary_id)
        needle = (search or "").strip().lower()
        return [
            row
            for row in rows
            if (status is None or row.get("status") == status)
            and (period is None or row.get("period") == period)
            and (project_id is None or row.get("project_id") == project_id)
            and (not needle or needle in str(row.get("descricao_progresso") or "").lower())
        ]

    def list_projects(self, actor: Actor) -> list[dict[str, Any]]:
        if actor.is_admin:
            return self._store.list_projects()
        return self._store.list_projects(actor.id)

    def get_project(self, project_id: str, actor: Actor) -> dict[str, Any]:
        project = self._store.get_project(project_id)
        if project is None:
            raise NotFoundError(entity="project", entity_id=project_id)
        if actor.is_beneficiary and not self._store.is_member(actor.id, project_id):
            raise AuthorizationError(
                reason=policy.NOT_MEMBER,
                message=f"beneficiary is not a member of project {project_id}",
            )
        return project
