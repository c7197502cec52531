"""Blueprint schemas"""

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, field_validator

COMPONENTS = ("blueprint", "costing")


class BlueprintUpload(BaseModel):
    blueprintKey: str
    costingKey: Optional[str] = None
    quotation: Optional[dict[str, Any]] = None

    @field_validator("blueprintKey")
    @classmethod
    def validate_key(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("blueprintKey is required")
        return v


class ComponentApproval(BaseModel):
    component: str

    @field_validator("component")
    @classmethod
    def validate_component(cls, v):
        if v not in COMPONENTS:
            raise ValueError("component must be 'blueprint' or 'costing'")
        return v


class RevisionRequest(BaseModel):
    notes: str
    referenceKeys: list[str] = []

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Revision notes are required")
        return v


class BlueprintResponse(BaseModel):
    id: int
    project_id: int
    version: int
    status: str
    blueprint_key: str
    costing_key: Optional[str] = None
    quotation: Optional[dict[str, Any]] = None
    blueprint_approved: bool
    costing_approved: bool
    revision_notes: Optional[str] = None
    revision_ref_keys: list[str] = []
    uploaded_by_id: int
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True
