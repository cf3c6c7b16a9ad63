"""Custom report builder: data sources, ad-hoc execution, templates, export.

All endpoints require an authenticated user. Template visibility and
ownership are enforced in ReportBuilderService, never here.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse

from casebook.api.deps import get_current_user, get_report_service
from casebook.core.audit import AuditLog
from casebook.models.user import User
from casebook.schemas.report import (
    PrebuiltTemplate,
    ReportBuilderAnalytics,
    ReportExecutionRequest,
    ReportExportRequest,
    ReportResult,
    TemplateCreate,
    TemplateExecutionRequest,
    TemplateResponse,
    TemplateUpdate,
)
from casebook.services.report_export import export_report, normalize_format
from casebook.services.report_service import ReportBuilderService


router = APIRouter()


@router.get("/data-sources")
def list_data_sources(
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    """Tables, fields and joins available to the visual builder."""
    return service.get_data_sources()


@router.post("/execute", response_model=ReportResult)
def execute_report(
    body: ReportExecutionRequest,
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    return service.execute_report(body.query_definition, body.parameters, timeout=body.timeout_seconds)


@router.post("/templates", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def save_template(
    body: TemplateCreate,
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    return service.save_template(body, current_user.id)


@router.get("/templates", response_model=List[TemplateResponse])
def list_templates(
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    """Public templates plus the caller's own."""
    return service.list_templates(current_user.id)


@router.get("/templates/{template_id}", response_model=TemplateResponse)
def get_template(
    template_id: str,
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    return service.get_template(template_id, current_user.id)


@router.put("/templates/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: str,
    body: TemplateUpdate,
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    return service.update_template(template_id, body, current_user.id)


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    template_id: str,
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    service.delete_template(template_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/pre-built-templates", response_model=List[PrebuiltTemplate])
def list_prebuilt_templates(
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    return list(service.get_prebuilt_templates())


@router.post("/templates/{template_id}/execute", response_model=ReportResult)
def execute_template(
    template_id: str,
    body: Optional[TemplateExecutionRequest] = None,
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    """Run a saved template; request parameters override the template's defaults."""
    body = body or TemplateExecutionRequest()
    return service.execute_template(
        template_id, current_user.id, body.parameters, timeout=body.timeout_seconds
    )


@router.post("/export")
def export(
    body: ReportExportRequest,
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    """Execute a report and download it as CSV or JSON."""
    export_format = normalize_format(body.format)
    result = service.execute_report(body.query_definition, body.parameters, timeout=body.timeout_seconds)
    exported = export_report(result, export_format)
    AuditLog.log_report_export(
        current_user.id, body.query_definition.data_source, export_format, result.total_rows
    )
    return StreamingResponse(
        iter([exported.content]),
        media_type=exported.media_type,
        headers={"Content-Disposition": f"attachment; filename={exported.filename}"},
    )


@router.get("/analytics", response_model=ReportBuilderAnalytics)
def analytics(
    service: ReportBuilderService = Depends(get_report_service),
    current_user: User = Depends(get_current_user),
):
    """Template usage per type and recent template activity."""
    return service.get_analytics(current_user.id)
