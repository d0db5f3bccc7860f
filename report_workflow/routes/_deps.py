from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from report_workflow.domain import Actor
from report_workflow.errors import ApiError
from report_workflow.lifecycle import ReportLifecycleManager
from report_workflow.schemas import error_envelope


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def actor_from_request(request: Request) -> Actor:
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise ApiError(
            code="AUTH_UNAUTHORIZED",
            message="caller identity not resolved",
            error_class="security_sensitive",
            retryable=False,
            http_status=401,
        )
    return actor


def lifecycle_from_request(request: Request) -> ReportLifecycleManager:
    return request.app.state.lifecycle


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=message,
            error_class=error_class,
            retryable=retryable,
            trace_id=trace_id_from_request(request),
            details=details,
        ),
    )


def api_error_response(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        code=exc.code,
        message=exc.message,
        error_class=exc.error_class,
        retryable=exc.retryable,
        status_code=exc.http_status,
        details=exc.details,
    )
