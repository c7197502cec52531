"""Appointment repository - Database operations for appointments"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models_appointment import Appointment, AppointmentType
from ...shared.state_machine import AppointmentStatus


class AppointmentRepository:
    @staticmethod
    def get(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def find_active_for_customer(db: Session, customer_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.customer_id == customer_id,
                Appointment.status.in_(AppointmentStatus.ACTIVE),
            )
            .first()
        )

    @staticmethod
    def count_booked(db: Session, day: date, slot_code: str, appointment_type: str) -> int:
        """Requested + confirmed appointments occupying a capacity slot"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.date == day,
                Appointment.slot_code == slot_code,
                Appointment.type == appointment_type,
                Appointment.status.in_([AppointmentStatus.REQUESTED, AppointmentStatus.CONFIRMED]),
            )
            .count()
        )

    @staticmethod
    def create(db: Session, **fields) -> Appointment:
        appointment = Appointment(**fields)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def list_filtered(
        db: Session,
        *,
        customer_id: Optional[int] = None,
        sales_staff_id: Optional[int] = None,
        status: Optional[str] = None,
        appointment_type: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Appointment]:
        query = db.query(Appointment)
        if customer_id is not None:
            query = query.filter(Appointment.customer_id == customer_id)
        if sales_staff_id is not None:
            query = query.filter(Appointment.sales_staff_id == sales_staff_id)
        if status:
            query = query.filter(Appointment.status == status)
        if appointment_type:
            query = query.filter(Appointment.type == appointment_type)
        if date_from:
            query = query.filter(Appointment.date >= date_from)
        if date_to:
            query = query.filter(Appointment.date <= date_to)
        return (
            query.order_by(Appointment.date.desc(), Appointment.slot_code)
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_missing_visit_fee(db: Session, limit: int = 50) -> list[Appointment]:
        """Active on-site appointments whose fee quote has not succeeded yet"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.type == AppointmentType.OCULAR,
                Appointment.status.in_(AppointmentStatus.ACTIVE),
                Appointment.visit_fee.is_(None),
                Appointment.latitude.isnot(None),
                Appointment.longitude.isnot(None),
            )
            .order_by(Appointment.id.asc())
            .limit(limit)
            .all()
        )
