from __future__ import annotations

from fastapi import APIRouter, Request

from report_workflow.routes._deps import actor_from_request, lifecycle_from_request, trace_id_from_request
from report_workflow.schemas import success_envelope

router = APIRouter(prefix="/api/v1", tags=["projects"])


@router.get("/projects")
def list_projects(request: Request):
    items = lifecycle_from_request(request).list_projects(actor_from_request(request))
    return success_envelope({"items": items, "total": len(items)}, trace_id_from_request(request))


@router.get("/projects/{project_id}")
def get_project(project_id: str, request: Request):
    data = lifecycle_from_request(request).get_project(project_id, actor_from_request(request))
    return success_envelope(data, trace_id_from_request(request))
