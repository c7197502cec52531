"""Fabrication schemas"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.state_machine import FabricationStatus


class FabricationUpdateCreate(BaseModel):
    status: str
    notes: Optional[str] = None
    photoKeys: list[str] = []

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in FabricationStatus.ORDER:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(FabricationStatus.ORDER)}")
        return v


class FabricationUpdateResponse(BaseModel):
    id: int
    project_id: int
    status: str
    notes: Optional[str] = None
    photo_keys: list[str] = []
    updated_by_id: int
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class FabricationStatusResponse(BaseModel):
    projectId: int
    currentStatus: str
    latestUpdate: Optional[FabricationUpdateResponse] = None
    allowedNext: list[str]
