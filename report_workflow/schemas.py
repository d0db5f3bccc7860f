from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class ReportFields(BaseModel):
    model_config = ConfigDict(extra="forbid")

    period: str | None = None
    descricao_progresso: str | None = None
    # Checked by the lifecycle validator; booleans must not be coerced to 0/1 here.
    postos_trabalho: Any = None
    observacoes: str | None = None

    def content_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ReportCreateRequest(ReportFields):
    project_id: str
    submit: bool = False

    def content_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"project_id", "submit"})


class ReportUpdateRequest(ReportFields):
    pass


class ReviewRequest(BaseModel):
    decision: Literal["aprovado", "rejeitado"]
    comentario: str | None = None


class CommentCreateRequest(BaseModel):
    comentario: str


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
