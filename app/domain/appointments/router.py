"""Appointment router - FastAPI endpoints for the booking lifecycle"""

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...services.audit_service import RequestMeta
from ...shared.access import Actor
from .schemas import (
    AgentAppointmentCreate,
    AppointmentCancel,
    AppointmentConfirm,
    AppointmentRequest,
    AppointmentResponse,
    AvailableSlotsResponse,
    NoShowRequest,
    RescheduleComplete,
    RescheduleRequest,
    VisitFeePayment,
)
from .service import AppointmentService

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


# ============================================================================
# AVAILABILITY & BOOKING
# ============================================================================


@router.get("/slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    date: dt.date = Query(...),
    type: str = Query("office"),
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Remaining capacity for each slot on a bookable day"""
    return AvailableSlotsResponse(date=date, type=type, slots=service.get_available_slots(date, type))


@router.post("", response_model=AppointmentResponse, status_code=201)
async def request_appointment(
    data: AppointmentRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.request_appointment(actor, data, RequestMeta.from_request(request))


@router.post("/agent", response_model=AppointmentResponse, status_code=201)
async def agent_create_appointment(
    data: AgentAppointmentCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book on behalf of an existing customer"""
    return service.agent_create_appointment(actor, data, RequestMeta.from_request(request))


@router.get("", response_model=list[AppointmentResponse])
async def list_appointments(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    date_from: Optional[dt.date] = Query(None),
    date_to: Optional[dt.date] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_appointments(actor, status, type, date_from, date_to, limit, offset)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment(actor, appointment_id)


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
    appointment_id: int,
    data: AppointmentConfirm,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Assign sales staff and lock the visit slot"""
    return service.confirm_appointment(actor, appointment_id, data, RequestMeta.from_request(request))


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: int,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.complete_appointment(actor, appointment_id, RequestMeta.from_request(request))


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: int,
    data: NoShowRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.mark_no_show(
        actor, appointment_id, data.internalNotes, RequestMeta.from_request(request)
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: AppointmentCancel,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.cancel_appointment(
        actor, appointment_id, data.reason, RequestMeta.from_request(request)
    )


# ============================================================================
# RESCHEDULING
# ============================================================================


@router.post("/{appointment_id}/reschedule-request", response_model=AppointmentResponse)
async def request_reschedule(
    appointment_id: int,
    data: RescheduleRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Customer asks to move a confirmed appointment"""
    return service.request_reschedule(
        actor, appointment_id, data.reason, RequestMeta.from_request(request)
    )


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def complete_reschedule(
    appointment_id: int,
    data: RescheduleComplete,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Agent moves the appointment to its new date and slot"""
    return service.complete_reschedule(actor, appointment_id, data, RequestMeta.from_request(request))


# ============================================================================
# VISIT FEE
# ============================================================================


@router.post("/{appointment_id}/visit-fee/quote", response_model=AppointmentResponse)
async def quote_visit_fee(
    appointment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.quote_visit_fee(actor, appointment_id)


@router.post("/{appointment_id}/visit-fee/payment", response_model=AppointmentResponse)
async def record_visit_fee(
    appointment_id: int,
    data: VisitFeePayment,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.record_visit_fee(
        actor, appointment_id, data.paymentMethod, RequestMeta.from_request(request)
    )
