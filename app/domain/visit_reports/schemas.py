"""Visit report schemas"""

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, field_validator


class VisitReportUpdate(BaseModel):
    measurements: Optional[dict[str, Any]] = None
    materials: Optional[str] = None
    finishes: Optional[str] = None
    preferredDesign: Optional[str] = None
    customerRequirements: Optional[str] = None
    notes: Optional[str] = None
    mediaKeys: Optional[list[str]] = None


class VisitReportReturn(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("A return reason is required")
        return v


class VisitReportResponse(BaseModel):
    id: int
    appointment_id: int
    customer_id: int
    sales_staff_id: int
    status: str
    visit_type: str
    measurements: Optional[dict[str, Any]] = None
    materials: Optional[str] = None
    finishes: Optional[str] = None
    preferred_design: Optional[str] = None
    customer_requirements: Optional[str] = None
    notes: Optional[str] = None
    return_reason: Optional[str] = None
    media_keys: list[str] = []
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True
