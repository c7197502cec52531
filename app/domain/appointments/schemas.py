"""Appointment domain schemas - Pydantic models for validation"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from ...config import SLOT_CODES
from ...models_appointment import AppointmentType
from ..payments.schemas import PAYMENT_METHODS


def _validate_slot(v: str) -> str:
    if v not in SLOT_CODES:
        raise ValueError(f"slotCode must be one of {', '.join(SLOT_CODES)}")
    return v


class AppointmentRequest(BaseModel):
    """Customer booking request"""

    type: str
    date: dt.date
    slotCode: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    purpose: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in AppointmentType.ALL:
            raise ValueError("type must be 'office' or 'ocular'")
        return v

    @field_validator("slotCode")
    @classmethod
    def validate_slot_code(cls, v):
        return _validate_slot(v)

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v):
        if v is not None and not -90 <= v <= 90:
            raise ValueError("latitude out of range")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v):
        if v is not None and not -180 <= v <= 180:
            raise ValueError("longitude out of range")
        return v


class AgentAppointmentCreate(AppointmentRequest):
    """Appointment booked by an agent on behalf of a customer"""

    customerId: int


class AppointmentConfirm(BaseModel):
    salesStaffId: int
    internalNotes: Optional[str] = None


class RescheduleRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("A reason is required")
        return v


class RescheduleComplete(BaseModel):
    date: dt.date
    slotCode: str
    salesStaffId: Optional[int] = None

    @field_validator("slotCode")
    @classmethod
    def validate_slot_code(cls, v):
        return _validate_slot(v)


class AppointmentCancel(BaseModel):
    reason: Optional[str] = None


class NoShowRequest(BaseModel):
    internalNotes: Optional[str] = None


class VisitFeePayment(BaseModel):
    paymentMethod: str

    @field_validator("paymentMethod")
    @classmethod
    def validate_method(cls, v):
        if v not in PAYMENT_METHODS:
            raise ValueError(f"paymentMethod must be one of {', '.join(PAYMENT_METHODS)}")
        return v


class SlotAvailability(BaseModel):
    slotCode: str
    time: str
    available: bool
    remaining: int


class AvailableSlotsResponse(BaseModel):
    date: dt.date
    type: str
    slots: list[SlotAvailability]


class AppointmentResponse(BaseModel):
    id: int
    public_id: Optional[str] = None
    customer_id: int
    sales_staff_id: Optional[int] = None
    type: str
    date: dt.date
    slot_code: str
    status: str
    reschedule_count: int
    max_reschedules: int
    customer_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    customer_notes: Optional[str] = None
    internal_notes: Optional[str] = None
    visit_fee: Optional[Decimal] = None
    visit_fee_breakdown: Optional[dict] = None
    visit_fee_paid: bool = False
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True
