"""Calendar service - bookable-day rules, holidays and staff availability"""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models import Holiday, StaffUnavailability
from ...shared.access import Actor, Role, require_role
from ...shared.dates import business_today, is_weekend
from ...shared.errors import BadRequestError, DuplicateEntryError, ForbiddenError, NotFoundError
from .repository import CalendarRepository

logger = logging.getLogger(__name__)


class CalendarService:
    def __init__(self, db: Session, today: Callable[[], date] = business_today):
        self.db = db
        self.today = today
        self.repo = CalendarRepository()

    # ------------------------------------------------------------------
    # Booking rules
    # ------------------------------------------------------------------

    def assert_date_bookable(self, day: date) -> None:
        if day < self.today():
            raise BadRequestError("Cannot book appointments in the past")
        if is_weekend(day):
            raise BadRequestError("Appointments are not available on weekends")
        holiday = self.repo.get_holiday(self.db, day)
        if holiday:
            raise BadRequestError(f"{day.isoformat()} is a holiday: {holiday.name}")

    def assert_staff_available(self, staff_id: int, day: date) -> None:
        if self.repo.is_staff_unavailable(self.db, staff_id, day):
            raise BadRequestError("Selected sales staff is unavailable on this date")

    # ------------------------------------------------------------------
    # Holidays
    # ------------------------------------------------------------------

    def list_holidays(self, year: Optional[int] = None) -> list[Holiday]:
        return self.repo.list_holidays(self.db, year)

    def create_holiday(self, actor: Actor, day: date, name: str) -> Holiday:
        require_role(actor, Role.ADMIN)
        if self.repo.get_holiday(self.db, day):
            raise DuplicateEntryError(f"A holiday already exists on {day.isoformat()}")
        try:
            holiday = self.repo.add(self.db, Holiday(date=day, name=name))
            self.db.commit()
            self.db.refresh(holiday)
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"📅 Holiday {day} ({name}) created by {actor.id}")
        return holiday

    def delete_holiday(self, actor: Actor, holiday_id: int) -> None:
        require_role(actor, Role.ADMIN)
        holiday = self.repo.get_holiday_by_id(self.db, holiday_id)
        if not holiday:
            raise NotFoundError("Holiday not found")
        try:
            self.db.delete(holiday)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"🗑️ Holiday {holiday.date} deleted by {actor.id}")

    # ------------------------------------------------------------------
    # Staff availability
    # ------------------------------------------------------------------

    def set_unavailable_dates(self, actor: Actor, staff_id: int, dates: list[date]) -> list[date]:
        """Replace a staff member's unavailable dates. Staff may edit only their own."""
        if not actor.is_admin and actor.id != staff_id:
            raise ForbiddenError("You can only manage your own availability")
        try:
            self.repo.clear_unavailable_dates(self.db, staff_id)
            for day in sorted(set(dates)):
                self.db.add(StaffUnavailability(staff_id=staff_id, date=day))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"📅 Staff {staff_id} unavailable on {len(set(dates))} date(s)")
        return self.get_unavailable_dates(staff_id)

    def get_unavailable_dates(self, staff_id: int) -> list[date]:
        return [row.date for row in self.repo.list_unavailable_dates(self.db, staff_id)]
