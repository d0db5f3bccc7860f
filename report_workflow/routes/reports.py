from __future__ import annotations

import mimetypes

from fastapi import APIRouter, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from report_workflow.routes._deps import actor_from_request, lifecycle_from_request, trace_id_from_request
from report_workflow.schemas import (
    CommentCreateRequest,
    ReportCreateRequest,
    ReportUpdateRequest,
    ReviewRequest,
    success_envelope,
)

router = APIRouter(prefix="/api/v1", tags=["reports"])


@router.get("/reports")
def list_reports(
    request: Request,
    status: str | None = Query(default=None),
    period: str | None = Query(default=None),
    project_id: str | None = Query(default=None),
    q: str | None = Query(default=None),
):
    items = lifecycle_from_request(request).list_reports(
        actor_from_request(request),
        status=status,
        period=period,
        project_id=project_id,
        search=q,
    )
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.post("/reports")
def create_report(payload: ReportCreateRequest, request: Request):
    data = lifecycle_from_request(request).create_report(
        actor_from_request(request),
        payload.project_id,
        payload.content_fields(),
        submit=payload.submit,
    )
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))


@router.get("/reports/{report_id}")
def get_report(report_id: str, request: Request):
    data = lifecycle_from_request(request).get_report_detail(report_id, actor_from_request(request))
    return success_envelope(data, trace_id_from_request(request))


@router.put("/reports/{report_id}")
def update_report(report_id: str, payload: ReportUpdateRequest, request: Request):
    data = lifecycle_from_request(request).update_draft(
        actor_from_request(request),
        report_id,
        payload.content_fields(),
    )
    return success_envelope(data, trace_id_from_request(request))


@router.delete("/reports/{report_id}")
def delete_report(report_id: str, request: Request):
    data = lifecycle_from_request(request).delete_report(report_id, actor_from_request(request))
    return success_envelope(data, trace_id_from_request(request))


@router.post("/reports/{report_id}/submit")
def submit_report(report_id: str, request: Request):
    data = lifecycle_from_request(request).submit(report_id, actor_from_request(request))
    return success_envelope(data, trace_id_from_request(request))


@router.post("/reports/{report_id}/review")
def review_report(report_id: str, payload: ReviewRequest, request: Request):
    data = lifecycle_from_request(request).review(
        report_id,
        actor_from_request(request),
        payload.decision,
        payload.comentario,
    )
    return success_envelope(data, trace_id_from_request(request))


@router.get("/reports/{report_id}/comments")
def list_comments(report_id: str, request: Request):
    items = lifecycle_from_request(request).list_comments(report_id, actor_from_request(request))
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.post("/reports/{report_id}/comments")
def add_comment(report_id: str, payload: CommentCreateRequest, request: Request):
    data = lifecycle_from_request(request).add_comment(report_id, actor_from_request(request), payload.comentario)
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))


@router.post("/reports/{report_id}/attachments")
async def upload_attachment(
    report_id: str,
    request: Request,
    file: UploadFile = File(...),
    type: str = Form(...),
):
    content = await file.read()
    data = lifecycle_from_request(request).add_attachment(
        report_id,
        actor_from_request(request),
        attachment_type=type,
        filename=file.filename or "attachment",
        content=content,
        content_type=file.content_type,
    )
    return JSONResponse(status_code=201, content=success_envelope(data, trace_id_from_request(request)))


@router.get("/reports/{report_id}/attachments/{attachment_id}")
def download_attachment(report_id: str, attachment_id: str, request: Request):
    attachment, content = lifecycle_from_request(request).get_attachment_content(
        report_id,
        attachment_id,
        actor_from_request(request),
    )
    filename = str(attachment["url"]).rsplit("/", 1)[-1]
    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return Response(
        content=content,
        media_type=media_type,
        headers={"content-disposition": f'attachment; filename="{filename}"'},
    )
