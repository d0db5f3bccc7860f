from __future__ import annotations

import logging
import os
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from report_workflow.config import AppConfig
from report_workflow.errors import ApiError
from report_workflow.lifecycle import ReportLifecycleManager
from report_workflow.object_storage import create_object_storage_from_env
from report_workflow.record_store import create_record_store_from_env
from report_workflow.routes import projects as projects_routes
from report_workflow.routes import reports as reports_routes
from report_workflow.routes._deps import (
    api_error_response,
    error_response,
    request_id_from_request,
    trace_id_from_request,
)
from report_workflow.schemas import success_envelope
from report_workflow.security import JwtSecurityConfig, actor_from_headers, parse_and_validate_bearer_token

logger = logging.getLogger(__name__)

_PUBLIC_PATHS = {"/healthz", "/api/v1/health"}


def build_lifecycle_manager_from_env(app_config: AppConfig | None = None) -> ReportLifecycleManager:
    cfg = app_config or AppConfig.from_env()
    return ReportLifecycleManager(
        record_store=create_record_store_from_env(os.environ),
        blob_store=create_object_storage_from_env(os.environ),
        max_attachment_bytes=cfg.attachment_max_bytes,
    )


def create_app(
    *,
    lifecycle: ReportLifecycleManager | None = None,
    security_cfg: JwtSecurityConfig | None = None,
    app_config: AppConfig | None = None,
) -> FastAPI:
    app = FastAPI(title="Grant Report Workflow API", version="0.1.0")
    app_cfg = app_config or AppConfig.from_env()
    auth_cfg = security_cfg or JwtSecurityConfig.from_env()
    app.state.lifecycle = lifecycle or build_lifecycle_manager_from_env(app_cfg)
    app.state.security_cfg = auth_cfg

    if app_cfg.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=app_cfg.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def resolve_actor(request: Request, call_next):
        request.state.trace_id = request.headers.get("x-trace-id", "").strip() or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        request.state.actor = None
        path = request.url.path
        try:
            if path.startswith("/api/v1/") and path not in _PUBLIC_PATHS:
                if auth_cfg.enabled:
                    auth_ctx = parse_and_validate_bearer_token(
                        authorization=request.headers.get("Authorization"),
                        cfg=auth_cfg,
                        role_lookup=app.state.lifecycle.record_store.get_profile_role,
                    )
                    request.state.actor = auth_ctx.actor
                else:
                    request.state.actor = actor_from_headers(request.headers)
        except ApiError as exc:
            logger.info("request_unauthenticated path=%s code=%s", path, exc.code)
            response = api_error_response(request, exc)
        else:
            response = await call_next(request)
        response.headers["x-trace-id"] = trace_id_from_request(request)
        response.headers["x-request-id"] = request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.http_status >= 500:
            logger.warning("request_failed path=%s code=%s", request.url.path, exc.code)
        return api_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = None
        errors = exc.errors()
        if errors:
            loc = [str(x) for x in errors[0].get("loc", ()) if x not in ("body", "query", "path")]
            if loc:
                details = {"field": loc[-1]}
        return error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            error_class="validation",
            retryable=False,
            status_code=400,
            details=details,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    @app.get("/api/v1/health")
    def health_api(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    app.include_router(projects_routes.router)
    app.include_router(reports_routes.router)
    return app


app = create_app()
