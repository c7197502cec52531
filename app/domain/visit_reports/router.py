"""Visit report router"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...services.audit_service import RequestMeta
from ...shared.access import Actor
from .schemas import VisitReportResponse, VisitReportReturn, VisitReportUpdate
from .service import VisitReportService

router = APIRouter(prefix="/visit-reports", tags=["Visit Reports"])


def get_visit_report_service(db: Session = Depends(get_db)) -> VisitReportService:
    """Dependency injection for VisitReportService"""
    return VisitReportService(db)


@router.get("", response_model=list[VisitReportResponse])
async def list_visit_reports(
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: VisitReportService = Depends(get_visit_report_service),
):
    return service.list_reports(actor, status, limit, offset)


@router.get("/by-appointment/{appointment_id}", response_model=VisitReportResponse)
async def get_visit_report_by_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: VisitReportService = Depends(get_visit_report_service),
):
    return service.get_by_appointment(actor, appointment_id)


@router.get("/{report_id}", response_model=VisitReportResponse)
async def get_visit_report(
    report_id: int,
    actor: Actor = Depends(get_current_actor),
    service: VisitReportService = Depends(get_visit_report_service),
):
    return service.get_report(actor, report_id)


@router.patch("/{report_id}", response_model=VisitReportResponse)
async def update_visit_report(
    report_id: int,
    data: VisitReportUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: VisitReportService = Depends(get_visit_report_service),
):
    return service.update_report(actor, report_id, data, RequestMeta.from_request(request))


@router.post("/{report_id}/submit", response_model=VisitReportResponse)
async def submit_visit_report(
    report_id: int,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: VisitReportService = Depends(get_visit_report_service),
):
    """Submit findings; completes the appointment and creates the project"""
    return service.submit_report(actor, report_id, RequestMeta.from_request(request))


@router.post("/{report_id}/return", response_model=VisitReportResponse)
async def return_visit_report(
    report_id: int,
    data: VisitReportReturn,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: VisitReportService = Depends(get_visit_report_service),
):
    return service.return_report(actor, report_id, data.reason, RequestMeta.from_request(request))


@router.post("/{report_id}/complete", response_model=VisitReportResponse)
async def complete_visit_report(
    report_id: int,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: VisitReportService = Depends(get_visit_report_service),
):
    return service.mark_completed(actor, report_id, RequestMeta.from_request(request))
