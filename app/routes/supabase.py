from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from app.models.supabase import SetupRequest, SetupResponse, StatusResponse, checks_by_name
from app.services.dependencies import get_supabase_setup_service
from app.services.setup.supabase_setup_service import SupabaseSetupService

router = APIRouter(tags=["supabase"])


@router.post("/setup", response_model=SetupResponse, response_model_exclude_none=True)
async def setup(
    request: Request,
    payload: Optional[SetupRequest] = Body(default=None),
    svc: SupabaseSetupService = Depends(get_supabase_setup_service),
) -> SetupResponse:
    provisioning_request = (payload or SetupRequest()).to_provisioning_request()
    result = await svc.setup(provisioning_request, should_cancel=request.is_disconnected)
    return SetupResponse(
        ok=result.ok,
        logs=result.logs,
        project_ref=result.project_ref,
        backend_url=result.backend_url,
        admin_token=result.admin_token,
        generated_db_password=result.generated_db_password,
        checks=checks_by_name(result.checks),
    )


@router.get("/status", response_model=StatusResponse, response_model_exclude_none=True)
async def status(
    project_ref: Optional[str] = Query(default=None, alias="projectRef"),
    supabase_url: Optional[str] = Query(default=None, alias="supabaseUrl"),
    admin_token: Optional[str] = Query(default=None, alias="adminToken"),
    svc: SupabaseSetupService = Depends(get_supabase_setup_service),
) -> StatusResponse:
    report = await svc.check_status(
        project_ref=(project_ref or "").strip() or None,
        supabase_url=(supabase_url or "").strip() or None,
        admin_token=(admin_token or "").strip() or None,
    )
    return StatusResponse(
        project_ref=report.project_ref,
        backend_url=report.backend_url,
        checks=checks_by_name(report.checks),
        note=report.note,
    )
