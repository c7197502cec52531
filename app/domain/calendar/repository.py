"""Calendar repository - holidays and staff unavailability"""

from datetime import date
from typing import Optional

from sqlalchemy import extract
from sqlalchemy.orm import Session

from ...models import Holiday, StaffUnavailability


class CalendarRepository:
    @staticmethod
    def get_holiday(db: Session, day: date) -> Optional[Holiday]:
        return db.query(Holiday).filter(Holiday.date == day).first()

    @staticmethod
    def get_holiday_by_id(db: Session, holiday_id: int) -> Optional[Holiday]:
        return db.query(Holiday).filter(Holiday.id == holiday_id).first()

    @staticmethod
    def list_holidays(db: Session, year: Optional[int] = None) -> list[Holiday]:
        query = db.query(Holiday)
        if year is not None:
            query = query.filter(extract("year", Holiday.date) == year)
        return query.order_by(Holiday.date).all()

    @staticmethod
    def add(db: Session, row):
        db.add(row)
        db.flush()
        return row

    @staticmethod
    def is_staff_unavailable(db: Session, staff_id: int, day: date) -> bool:
        return (
            db.query(StaffUnavailability)
            .filter(StaffUnavailability.staff_id == staff_id, StaffUnavailability.date == day)
            .first()
            is not None
        )

    @staticmethod
    def list_unavailable_dates(db: Session, staff_id: int) -> list[StaffUnavailability]:
        return (
            db.query(StaffUnavailability)
            .filter(StaffUnavailability.staff_id == staff_id)
            .order_by(StaffUnavailability.date)
            .all()
        )

    @staticmethod
    def clear_unavailable_dates(db: Session, staff_id: int) -> int:
        return (
            db.query(StaffUnavailability)
            .filter(StaffUnavailability.staff_id == staff_id)
            .delete(synchronize_session=False)
        )
