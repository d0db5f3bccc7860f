"""Access policy for report actions.

Every predicate is pure: it looks only at the actor, the report row and the
requested target, and answers with a ``PolicyDecision``. Denials always carry a
reason code so the caller can tell the user exactly what went wrong.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from report_workflow.domain import ALLOWED_TRANSITIONS, Actor, ReportStatus, parse_status

NOT_OWNER = "not_owner"
NOT_MEMBER = "not_member"
WRONG_ROLE = "wrong_role"
WRONG_STATUS = "wrong_status"
INVALID_TRANSITION = "invalid_transition"

_ADMIN_TARGETS = frozenset({ReportStatus.APPROVED, ReportStatus.REJECTED})
_BENEFICIARY_TARGETS = frozenset({ReportStatus.SUBMITTED})


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str | None = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PolicyDecision(allowed=True)


def _deny(reason: str, message: str) -> PolicyDecision:
    return PolicyDecision(allowed=False, reason=reason, message=message)


def _is_owner(actor: Actor, report: dict[str, Any]) -> bool:
    return str(report.get("beneficiary_id") or "") == actor.id


def can_read(actor: Actor, report: dict[str, Any]) -> PolicyDecision:
    if actor.is_admin:
        return ALLOW
    if not _is_owner(actor, report):
        return _deny(NOT_OWNER, "report belongs to another beneficiary")
    return ALLOW


def can_create(actor: Actor, project_id: str, *, is_member: bool) -> PolicyDecision:
    if not actor.is_beneficiary:
        return _deny(WRONG_ROLE, "only beneficiaries can create reports")
    if not is_member:
        return _deny(NOT_MEMBER, f"beneficiary is not a member of project {project_id}")
    return ALLOW


def can_mutate_fields(actor: Actor, report: dict[str, Any]) -> PolicyDecision:
    if not actor.is_beneficiary:
        return _deny(WRONG_ROLE, "only the owning beneficiary can edit a report")
    if not _is_owner(actor, report):
        return _deny(NOT_OWNER, "report belongs to another beneficiary")
    if report.get("status") != ReportStatus.DRAFT.value:
        return _deny(WRONG_STATUS, "report can only be edited while it is a draft")
    return ALLOW


def can_delete(actor: Actor, report: dict[str, Any]) -> PolicyDecision:
    if not actor.is_beneficiary:
        return _deny(WRONG_ROLE, "only the owning beneficiary can delete a report")
    if not _is_owner(actor, report):
        return _deny(NOT_OWNER, "report belongs to another beneficiary")
    if report.get("status") != ReportStatus.DRAFT.value:
        return _deny(WRONG_STATUS, "report can only be deleted while it is a draft")
    return ALLOW


def can_attach(actor: Actor, report: dict[str, Any]) -> PolicyDecision:
    return can_mutate_fields(actor, report)


def can_comment(actor: Actor) -> PolicyDecision:
    if not actor.is_admin:
        return _deny(WRONG_ROLE, "only administrators can comment on reports")
    return ALLOW


def can_transition(actor: Actor, report: dict[str, Any], target_status: ReportStatus | str) -> PolicyDecision:
    target = parse_status(str(getattr(target_status, "value", target_status)))
    if target is None:
        return _deny(INVALID_TRANSITION, f"unknown target status: {target_status}")

    if actor.is_beneficiary:
        if target not in _BENEFICIARY_TARGETS:
            return _deny(WRONG_ROLE, f"beneficiaries cannot move a report to {target.value}")
        if not _is_owner(actor, report):
            return _deny(NOT_OWNER, "report belongs to another beneficiary")
    elif actor.is_admin:
        if target not in _ADMIN_TARGETS:
            return _deny(WRONG_ROLE, f"administrators cannot move a report to {target.value}")
    else:
        return _deny(WRONG_ROLE, "unknown role")

    current = parse_status(str(report.get("status") or ""))
    if current is None or target not in ALLOWED_TRANSITIONS[current]:
        current_label = current.value if current is not None else report.get("status")
        return _deny(INVALID_TRANSITION, f"invalid transition: {current_label} -> {target.value}")
    return ALLOW
