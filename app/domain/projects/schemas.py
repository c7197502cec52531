"""Project domain schemas - Pydantic models for validation"""

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from ...shared.state_machine import ProjectStatus


class ProjectCreate(BaseModel):
    appointmentId: int
    title: str
    serviceType: str
    description: Optional[str] = None
    siteAddress: Optional[str] = None
    measurements: Optional[dict[str, Any]] = None
    materialType: Optional[str] = None
    finishColor: Optional[str] = None
    quantity: int = 1
    notes: Optional[str] = None
    mediaKeys: list[str] = []

    @field_validator("title", "serviceType")
    @classmethod
    def validate_required_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("This field is required")
        return v

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v):
        if v < 1:
            raise ValueError("quantity must be at least 1")
        return v


class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    serviceType: Optional[str] = None
    description: Optional[str] = None
    siteAddress: Optional[str] = None
    measurements: Optional[dict[str, Any]] = None
    materialType: Optional[str] = None
    finishColor: Optional[str] = None
    quantity: Optional[int] = None
    notes: Optional[str] = None
    mediaKeys: Optional[list[str]] = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v):
        if v is not None and v < 1:
            raise ValueError("quantity must be at least 1")
        return v


class EngineerAssignment(BaseModel):
    engineerIds: list[int]

    @field_validator("engineerIds")
    @classmethod
    def validate_engineers(cls, v):
        if not v:
            raise ValueError("At least one engineer is required")
        return list(dict.fromkeys(v))


class FabricationAssignment(BaseModel):
    leadId: int
    assistantIds: list[int] = []


class ProjectTransition(BaseModel):
    status: str
    reason: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        valid = [
            ProjectStatus.DRAFT,
            ProjectStatus.SUBMITTED,
            ProjectStatus.BLUEPRINT,
            ProjectStatus.APPROVED,
            ProjectStatus.PAYMENT_PENDING,
            ProjectStatus.FABRICATION,
            ProjectStatus.COMPLETED,
            ProjectStatus.CANCELLED,
        ]
        if v not in valid:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(valid)}")
        return v


class ProjectResponse(BaseModel):
    id: int
    public_id: Optional[str] = None
    appointment_id: int
    customer_id: int
    sales_staff_id: Optional[int] = None
    title: str
    service_type: str
    description: Optional[str] = None
    site_address: Optional[str] = None
    measurements: Optional[dict[str, Any]] = None
    material_type: Optional[str] = None
    finish_color: Optional[str] = None
    quantity: int
    notes: Optional[str] = None
    status: str
    cancel_reason: Optional[str] = None
    engineer_ids: list[int] = []
    fabrication_lead_id: Optional[int] = None
    fabrication_assistant_ids: list[int] = []
    media_keys: list[str] = []
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True
