"""
Appointment booking models: appointments, slot holds and visit reports
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .config import DEFAULT_MAX_RESCHEDULES
from .database import Base
from .models import generate_public_id


class AppointmentType:
    OFFICE = "office"
    OCULAR = "ocular"  # on-site visit, binds a specific staff member

    ALL = (OFFICE, OCULAR)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)

    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booked_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    confirmed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    sales_staff_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    type = Column(String(20), nullable=False)  # office, ocular
    date = Column(Date, nullable=False, index=True)
    slot_code = Column(String(5), nullable=False)  # HH:MM from SLOT_CODES

    # Status workflow: requested → confirmed → (reschedule_requested → confirmed)* → completed | no_show
    # cancelled is reachable from every non-terminal state
    status = Column(String(50), default="requested", nullable=False, index=True)

    reschedule_count = Column(Integer, default=0, nullable=False)
    max_reschedules = Column(Integer, default=DEFAULT_MAX_RESCHEDULES, nullable=False)
    reschedule_reason = Column(Text, nullable=True)

    customer_address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    customer_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    # On-site visit fee, stamped by the route collaborator
    visit_fee = Column(Numeric(12, 2), nullable=True)
    visit_fee_breakdown = Column(JSON, nullable=True)
    visit_fee_paid = Column(Boolean, default=False, nullable=False)
    visit_fee_payment_method = Column(String(50), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SlotHold(Base):
    """Exclusive claim on a (date, slot, staff) triple.

    The unique constraint is what prevents double booking; unconfirmed rows
    carry an absolute expiry and stop blocking once it has passed.
    """

    __tablename__ = "slot_holds"
    __table_args__ = (
        UniqueConstraint("date", "slot_code", "staff_id", name="uq_slot_hold_date_slot_staff"),
    )

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    slot_code = Column(String(5), nullable=False)
    staff_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    confirmed = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=True, index=True)  # cleared once confirmed
    locked_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class VisitReport(Base):
    """Site findings captured by the assigned sales staff; one per appointment"""

    __tablename__ = "visit_reports"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(
        Integer, ForeignKey("appointments.id"), unique=True, nullable=False, index=True
    )
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sales_staff_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(String(50), default="draft", nullable=False, index=True)
    visit_type = Column(String(50), nullable=False)  # ocular, consultation

    measurements = Column(JSON, nullable=True)
    materials = Column(Text, nullable=True)
    finishes = Column(Text, nullable=True)
    preferred_design = Column(Text, nullable=True)
    customer_requirements = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    return_reason = Column(Text, nullable=True)
    media_keys = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
