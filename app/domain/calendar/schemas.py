"""Calendar domain schemas"""

import datetime as dt

from pydantic import BaseModel, field_validator


class HolidayCreate(BaseModel):
    date: dt.date
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Holiday name is required")
        return v


class HolidayResponse(BaseModel):
    id: int
    date: dt.date
    name: str

    class Config:
        from_attributes = True


class StaffAvailabilityUpdate(BaseModel):
    unavailableDates: list[dt.date]


class StaffAvailabilityResponse(BaseModel):
    staffId: int
    unavailableDates: list[dt.date]
