from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from typing import Any, Protocol

from report_workflow.db.postgres import PostgresTxRunner
from report_workflow.repositories import (
    InMemoryAttachmentsRepository,
    InMemoryCommentsRepository,
    InMemoryProfilesRepository,
    InMemoryProjectsRepository,
    InMemoryReportsRepository,
    PostgresAttachmentsRepository,
    PostgresCommentsRepository,
    PostgresProfilesRepository,
    PostgresProjectsRepository,
    PostgresReportsRepository,
)

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Durable storage consumed by the lifecycle manager.

    ``update_report`` and ``delete_report_with_comments`` take an
    ``expected_status`` and only apply when the stored status still matches
    it; a miss returns ``None`` and the caller decides between not-found and
    conflict.
    """

    def get_report(self, report_id: str) -> dict[str, Any] | None: ...

    def insert_report(self, report: dict[str, Any]) -> dict[str, Any]: ...

    def update_report(
        self,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str | None = None,
    ) -> dict[str, Any] | None: ...

    def update_report_with_comment(
        self,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str,
        comment: dict[str, Any] | None,
    ) -> tuple[dict[str, Any], dict[str, Any] | None] | None: ...

    def delete_report_with_comments(self, report_id: str, expected_status: str) -> int | None: ...

    def list_reports(self, beneficiary_id: str | None = None) -> list[dict[str, Any]]: ...

    def list_attachments(self, report_id: str) -> list[dict[str, Any]]: ...

    def insert_attachment(self, attachment: dict[str, Any]) -> dict[str, Any]: ...

    def delete_attachment(self, attachment_id: str) -> bool: ...

    def insert_comment(self, comment: dict[str, Any]) -> dict[str, Any]: ...

    def list_comments(self, report_id: str) -> list[dict[str, Any]]: ...

    def is_member(self, beneficiary_id: str, project_id: str) -> bool: ...

    def get_project(self, project_id: str) -> dict[str, Any] | None: ...

    def list_projects(self, beneficiary_id: str | None = None) -> list[dict[str, Any]]: ...

    def get_profile_role(self, user_id: str) -> str | None: ...


class InMemoryRecordStore:
    """Process-local record store. One lock serializes every call, so each call is atomic."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.reports: dict[str, dict[str, Any]] = {}
        self.attachments: dict[str, dict[str, Any]] = {}
        self.comments: list[dict[str, Any]] = []
        self.projects: dict[str, dict[str, Any]] = {}
        self.memberships: set[tuple[str, str]] = set()
        self.profiles: dict[str, str] = {}
        self._bind_repositories()

    def _bind_repositories(self) -> None:
        self.reports_repository = InMemoryReportsRepository(self.reports)
        self.attachments_repository = InMemoryAttachmentsRepository(self.attachments)
        self.comments_repository = InMemoryCommentsRepository(self.comments)
        self.projects_repository = InMemoryProjectsRepository(self.projects, self.memberships)
        self.profiles_repository = InMemoryProfilesRepository(self.profiles)

    # Seeding helpers: projects, memberships and profiles are owned by other systems.

    def add_project(self, project: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            return self.projects_repository.upsert(project=project)

    def assign_beneficiary(self, beneficiary_id: str, project_id: str) -> None:
        with self._lock:
            self.projects_repository.assign(beneficiary_id=beneficiary_id, project_id=project_id)

    def set_profile_role(self, user_id: str, role: str) -> None:
        with self._lock:
            self.profiles_repository.upsert(user_id=user_id, role=role)

    def get_report(self, report_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self.reports_repository.get(report_id=report_id)

    def insert_report(self, report: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            return self.reports_repository.insert(report=report)

    def update_report(
        self,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str | None = None,
    ) -> dict[str, Any] | None:
        with self._lock:
            return self.reports_repository.update(report_id=report_id, patch=patch, expected_status=expected_status)

    def update_report_with_comment(
        self,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str,
        comment: dict[str, Any] | None,
    ) -> tuple[dict[str, Any], dict[str, Any] | None] | None:
        with self._lock:
            saved_comment = None
            if comment is not None:
                saved_comment = self.comments_repository.insert(comment=comment)
            try:
                updated = self.reports_repository.update(
                    report_id=report_id,
                    patch=patch,
                    expected_status=expected_status,
                )
            except Exception:
                if saved_comment is not None:
                    self.comments_repository.remove(comment_id=saved_comment["id"])
                raise
            if updated is None:
                if saved_comment is not None:
                    self.comments_repository.remove(comment_id=saved_comment["id"])
                return None
            return updated, saved_comment

    def delete_report_with_comments(self, report_id: str, expected_status: str) -> int | None:
        with self._lock:
            row = self.reports_repository.get(report_id=report_id)
            if row is None or row.get("status") != expected_status:
                return None
            removed = self.comments_repository.delete_for_report(report_id=report_id)
            self.reports_repository.delete(report_id=report_id, expected_status=expected_status)
            return removed

    def list_reports(self, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return self.reports_repository.list(beneficiary_id=beneficiary_id)

    def list_attachments(self, report_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return self.attachments_repository.list_for_report(report_id=report_id)

    def insert_attachment(self, attachment: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            return self.attachments_repository.insert(attachment=attachment)

    def delete_attachment(self, attachment_id: str) -> bool:
        with self._lock:
            return self.attachments_repository.delete(attachment_id=attachment_id)

    def insert_comment(self, comment: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            return self.comments_repository.insert(comment=comment)

    def list_comments(self, report_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return self.comments_repository.list_for_report(report_id=report_id)

    def is_member(self, beneficiary_id: str, project_id: str) -> bool:
        with self._lock:
            return self.projects_repository.is_member(beneficiary_id=beneficiary_id, project_id=project_id)

    def get_project(self, project_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self.projects_repository.get(project_id=project_id)

    def list_projects(self, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            return self.projects_repository.list(beneficiary_id=beneficiary_id)

    def get_profile_role(self, user_id: str) -> str | None:
        with self._lock:
            return self.profiles_repository.get_role(user_id=user_id)


class _StatusPreconditionFailed(Exception):
    pass


class PostgresRecordStore:
    """Record store over PostgreSQL; each method is one transaction."""

    def __init__(self, *, tx_runner: PostgresTxRunner) -> None:
        self._tx_runner = tx_runner
        self.reports_repository = PostgresReportsRepository(tx_runner=tx_runner)
        self.attachments_repository = PostgresAttachmentsRepository(tx_runner=tx_runner)
        self.comments_repository = PostgresCommentsRepository(tx_runner=tx_runner)
        self.projects_repository = PostgresProjectsRepository(tx_runner=tx_runner)
        self.profiles_repository = PostgresProfilesRepository(tx_runner=tx_runner)

    def get_report(self, report_id: str) -> dict[str, Any] | None:
        return self.reports_repository.get(report_id=report_id)

    def insert_report(self, report: dict[str, Any]) -> dict[str, Any]:
        return self.reports_repository.insert(report=report)

    def update_report(
        self,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str | None = None,
    ) -> dict[str, Any] | None:
        return self.reports_repository.update(report_id=report_id, patch=patch, expected_status=expected_status)

    def update_report_with_comment(
        self,
        report_id: str,
        patch: dict[str, Any],
        expected_status: str,
        comment: dict[str, Any] | None,
    ) -> tuple[dict[str, Any], dict[str, Any] | None] | None:
        def _op(conn: Any) -> tuple[dict[str, Any], dict[str, Any] | None]:
            saved_comment = None
            if comment is not None:
                saved_comment = self.comments_repository.insert_with(conn, comment=comment)
            updated = self.reports_repository.update_with(
                conn,
                report_id=report_id,
                patch=patch,
                expected_status=expected_status,
            )
            if updated is None:
                # Raising rolls back the comment insert with the rest of the transaction.
                raise _StatusPreconditionFailed()
            return updated, saved_comment

        try:
            return self._tx_runner.run_in_tx(fn=_op)
        except _StatusPreconditionFailed:
            return None

    def delete_report_with_comments(self, report_id: str, expected_status: str) -> int | None:
        def _op(conn: Any) -> int:
            if not self.reports_repository.lock_with(conn, report_id=report_id, expected_status=expected_status):
                raise _StatusPreconditionFailed()
            removed = self.comments_repository.delete_for_report_with(conn, report_id=report_id)
            self.reports_repository.delete_with(conn, report_id=report_id, expected_status=expected_status)
            return removed

        try:
            return self._tx_runner.run_in_tx(fn=_op)
        except _StatusPreconditionFailed:
            return None

    def list_reports(self, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        return self.reports_repository.list(beneficiary_id=beneficiary_id)

    def list_attachments(self, report_id: str) -> list[dict[str, Any]]:
        return self.attachments_repository.list_for_report(report_id=report_id)

    def insert_attachment(self, attachment: dict[str, Any]) -> dict[str, Any]:
        return self.attachments_repository.insert(attachment=attachment)

    def delete_attachment(self, attachment_id: str) -> bool:
        return self.attachments_repository.delete(attachment_id=attachment_id)

    def insert_comment(self, comment: dict[str, Any]) -> dict[str, Any]:
        return self.comments_repository.insert(comment=comment)

    def list_comments(self, report_id: str) -> list[dict[str, Any]]:
        return self.comments_repository.list_for_report(report_id=report_id)

    def is_member(self, beneficiary_id: str, project_id: str) -> bool:
        return self.projects_repository.is_member(beneficiary_id=beneficiary_id, project_id=project_id)

    def get_project(self, project_id: str) -> dict[str, Any] | None:
        return self.projects_repository.get(project_id=project_id)

    def list_projects(self, beneficiary_id: str | None = None) -> list[dict[str, Any]]:
        return self.projects_repository.list(beneficiary_id=beneficiary_id)

    def get_profile_role(self, user_id: str) -> str | None:
        return self.profiles_repository.get_role(user_id=user_id)


def create_record_store_from_env(
    environ: Mapping[str, str] | None = None,
) -> InMemoryRecordStore | PostgresRecordStore:
    env = os.environ if environ is None else environ
    backend = env.get("REPORT_STORE_BACKEND", "memory").strip().lower() or "memory"
    if backend == "postgres":
        dsn = env.get("POSTGRES_DSN", "")
        return PostgresRecordStore(tx_runner=PostgresTxRunner(dsn))
    if backend != "memory":
        raise ValueError(f"unsupported REPORT_STORE_BACKEND: {backend}")
    logger.info("record_store_backend backend=memory")
    return InMemoryRecordStore()
