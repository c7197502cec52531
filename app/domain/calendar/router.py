"""Calendar router - holidays and staff availability endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...shared.access import Actor
from .schemas import (
    HolidayCreate,
    HolidayResponse,
    StaffAvailabilityResponse,
    StaffAvailabilityUpdate,
)
from .service import CalendarService

router = APIRouter(prefix="/calendar", tags=["Calendar"])


def get_calendar_service(db: Session = Depends(get_db)) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db)


@router.get("/holidays", response_model=list[HolidayResponse])
async def list_holidays(
    year: Optional[int] = Query(None),
    service: CalendarService = Depends(get_calendar_service),
):
    return service.list_holidays(year)


@router.post("/holidays", response_model=HolidayResponse, status_code=201)
async def create_holiday(
    data: HolidayCreate,
    actor: Actor = Depends(get_current_actor),
    service: CalendarService = Depends(get_calendar_service),
):
    return service.create_holiday(actor, data.date, data.name)


@router.delete("/holidays/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CalendarService = Depends(get_calendar_service),
):
    service.delete_holiday(actor, holiday_id)


@router.get("/staff/{staff_id}/availability", response_model=StaffAvailabilityResponse)
async def get_staff_availability(
    staff_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CalendarService = Depends(get_calendar_service),
):
    return StaffAvailabilityResponse(
        staffId=staff_id, unavailableDates=service.get_unavailable_dates(staff_id)
    )


@router.put("/staff/{staff_id}/availability", response_model=StaffAvailabilityResponse)
async def set_staff_availability(
    staff_id: int,
    data: StaffAvailabilityUpdate,
    actor: Actor = Depends(get_current_actor),
    service: CalendarService = Depends(get_calendar_service),
):
    dates = service.set_unavailable_dates(actor, staff_id, data.unavailableDates)
    return StaffAvailabilityResponse(staffId=staff_id, unavailableDates=dates)
