from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReportStatus(str, Enum):
    DRAFT = "rascunho"
    SUBMITTED = "enviado"
    APPROVED = "aprovado"
    REJECTED = "rejeitado"


class ReportPeriod(str, Enum):
    MONTHLY = "mensal"
    QUARTERLY = "trimestral"
    SEMIANNUAL = "semestral"
    ANNUAL = "anual"


class AttachmentType(str, Enum):
    PROJECT_PHOTO = "foto_projeto"
    PROOF_OF_EXPENSE = "comprovante"


class Role(str, Enum):
    BENEFICIARY = "beneficiary"
    ADMIN = "admin"


ALLOWED_TRANSITIONS: dict[ReportStatus, set[ReportStatus]] = {
    ReportStatus.DRAFT: {ReportStatus.SUBMITTED},
    ReportStatus.SUBMITTED: {ReportStatus.APPROVED, ReportStatus.REJECTED},
    ReportStatus.APPROVED: set(),
    ReportStatus.REJECTED: set(),
}

REVIEW_DECISIONS: frozenset[ReportStatus] = frozenset({ReportStatus.APPROVED, ReportStatus.REJECTED})

# Owner-editable columns; everything else on a report row is managed by the lifecycle.
CONTENT_FIELDS: tuple[str, ...] = ("period", "descricao_progresso", "postos_trabalho", "observacoes")


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_beneficiary(self) -> bool:
        return self.role == Role.BENEFICIARY


def parse_status(value: str) -> ReportStatus | None:
    try:
        return ReportStatus(value)
    except ValueError:
        return None


def is_valid_transition(current: str, target: str) -> bool:
    current_status = parse_status(current)
    target_status = parse_status(target)
    if current_status is None or target_status is None:
        return False
    return target_status in ALLOWED_TRANSITIONS[current_status]
