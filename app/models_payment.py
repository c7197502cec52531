"""
Staged payment models: plans, stages, proof-of-payment records and receipt counters
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class PaymentPlan(Base):
    __tablename__ = "payment_plans"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), unique=True, nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    is_pay_in_full = Column(Boolean, default=False, nullable=False)
    # Locked the first time any stage is verified
    is_immutable = Column(Boolean, default=False, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stages = relationship(
        "PaymentStage",
        back_populates="plan",
        order_by="PaymentStage.position",
        cascade="all, delete-orphan",
    )


class PaymentStage(Base):
    __tablename__ = "payment_stages"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("payment_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # 1-based order within the plan
    label = Column(String(100), nullable=False)
    percentage = Column(Numeric(7, 4), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)  # target amount
    status = Column(String(50), default="pending", nullable=False)
    amount_paid = Column(Numeric(12, 2), default=0, nullable=False)
    credit_applied = Column(Numeric(12, 2), default=0, nullable=False)
    remaining_balance = Column(Numeric(12, 2), nullable=False)
    qr_code_key = Column(String(500), nullable=True)

    plan = relationship("PaymentPlan", back_populates="stages")


class Payment(Base):
    """One submitted proof of payment against a stage"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    stage_id = Column(Integer, ForeignKey("payment_stages.id"), nullable=False, index=True)
    method = Column(String(50), nullable=False)  # cash, gcash, bank_transfer, paymongo
    amount_paid = Column(Numeric(12, 2), nullable=False)
    reference_number = Column(String(255), nullable=True)
    proof_key = Column(String(500), nullable=True)
    status = Column(String(50), default="proof_submitted", nullable=False, index=True)
    idempotency_key = Column(String(255), unique=True, nullable=True)
    excess_credit = Column(Numeric(12, 2), default=0, nullable=False)
    decline_reason = Column(Text, nullable=True)
    verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    receipt_number = Column(String(50), unique=True, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ReceiptCounter(Base):
    __tablename__ = "receipt_counters"

    year = Column(Integer, primary_key=True)
    last_seq = Column(Integer, default=0, nullable=False)
