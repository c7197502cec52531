"""Payment domain schemas - Pydantic models for validation"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

PAYMENT_METHODS = ("cash", "gcash", "bank_transfer", "paymongo")


class PaymentPlanCreate(BaseModel):
    totalAmount: Decimal
    stagePercentages: list[Decimal]

    @field_validator("totalAmount")
    @classmethod
    def validate_total(cls, v):
        if v <= 0:
            raise ValueError("totalAmount must be greater than zero")
        return v

    @field_validator("stagePercentages")
    @classmethod
    def validate_percentages(cls, v):
        if not v:
            raise ValueError("At least one stage is required")
        if any(p <= 0 for p in v):
            raise ValueError("Stage percentages must be positive")
        return v


class PaymentPlanUpdate(BaseModel):
    totalAmount: Optional[Decimal] = None
    stagePercentages: Optional[list[Decimal]] = None

    @field_validator("totalAmount")
    @classmethod
    def validate_total(cls, v):
        if v is not None and v <= 0:
            raise ValueError("totalAmount must be greater than zero")
        return v


class PaymentProofSubmit(BaseModel):
    method: str
    amountPaid: Decimal
    referenceNumber: Optional[str] = None
    proofKey: Optional[str] = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        if v not in PAYMENT_METHODS:
            raise ValueError(f"method must be one of {', '.join(PAYMENT_METHODS)}")
        return v

    @field_validator("amountPaid")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("amountPaid must be greater than zero")
        return v


class PaymentDecline(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("A decline reason is required")
        return v


class PaymentStageResponse(BaseModel):
    id: int
    position: int
    label: str
    percentage: Decimal
    amount: Decimal
    status: str
    amount_paid: Decimal
    credit_applied: Decimal
    remaining_balance: Decimal
    qr_code_key: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentPlanResponse(BaseModel):
    id: int
    project_id: int
    total_amount: Decimal
    is_pay_in_full: bool
    is_immutable: bool
    stages: list[PaymentStageResponse]
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    project_id: int
    stage_id: int
    method: str
    amount_paid: Decimal
    reference_number: Optional[str] = None
    proof_key: Optional[str] = None
    status: str
    excess_credit: Decimal
    decline_reason: Optional[str] = None
    verified_by_id: Optional[int] = None
    verified_at: Optional[dt.datetime] = None
    receipt_number: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True
