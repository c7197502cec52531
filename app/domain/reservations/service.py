"""Reservation manager - anti-double-booking for (date, slot, staff) triples

A hold is a row in ``slot_holds``; the unique constraint on
(date, slot_code, staff_id) decides every race. Unconfirmed holds expire
after ``SLOT_HOLD_TTL_SECONDS``: an expired row is deleted right before a new
hold attempt on the same key, and ``purge_expired`` sweeps the rest.

Methods never commit. The caller commits once its whole operation
(hold plus appointment change) has succeeded.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import SLOT_HOLD_TTL_SECONDS
from ...models_appointment import SlotHold
from ...shared.dates import utcnow
from ...shared.errors import NotFoundError, SlotLockedError
from .repository import SlotHoldRepository

logger = logging.getLogger(__name__)


class ReservationManager:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        ttl_seconds: int = SLOT_HOLD_TTL_SECONDS,
    ):
        self.db = db
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self.repo = SlotHoldRepository()

    def _is_active(self, hold: SlotHold, now: datetime) -> bool:
        return hold.confirmed or hold.expires_at is None or hold.expires_at > now

    def tentatively_hold(
        self, day: date, slot_code: str, staff_id: int, holder_id: Optional[int]
    ) -> SlotHold:
        """Claim the key for ``ttl`` seconds, or raise SlotLockedError."""
        now = self.clock()
        self.repo.delete_expired_for_key(self.db, day, slot_code, staff_id, now)

        hold = SlotHold(
            date=day,
            slot_code=slot_code,
            staff_id=staff_id,
            locked_by_id=holder_id,
            confirmed=False,
            expires_at=now + self.ttl,
        )
        try:
            self.repo.insert(self.db, hold)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"⚠️ Slot {day} {slot_code} for staff {staff_id} already held")
            raise SlotLockedError(
                details={"date": day.isoformat(), "slotCode": slot_code, "staffId": staff_id}
            ) from e

        logger.info(f"🔒 Held slot {day} {slot_code} for staff {staff_id} until {hold.expires_at}")
        return hold

    def confirm(self, day: date, slot_code: str, staff_id: int, appointment_id: int) -> SlotHold:
        hold = self.repo.get(self.db, day, slot_code, staff_id)
        if not hold or not self._is_active(hold, self.clock()):
            raise NotFoundError("Slot hold not found or expired")

        hold.confirmed = True
        hold.expires_at = None
        hold.appointment_id = appointment_id
        self.db.flush()
        logger.info(f"✅ Confirmed slot {day} {slot_code} for staff {staff_id} (appointment {appointment_id})")
        return hold

    def hold_and_confirm(
        self,
        day: date,
        slot_code: str,
        staff_id: int,
        holder_id: Optional[int],
        appointment_id: int,
    ) -> SlotHold:
        self.tentatively_hold(day, slot_code, staff_id, holder_id)
        return self.confirm(day, slot_code, staff_id, appointment_id)

    def release(self, day: date, slot_code: str, staff_id: int) -> bool:
        deleted = self.repo.delete(self.db, day, slot_code, staff_id)
        if deleted:
            logger.info(f"🔓 Released slot {day} {slot_code} for staff {staff_id}")
        return bool(deleted)

    def is_held(self, day: date, slot_code: str, staff_id: int) -> bool:
        hold = self.repo.get(self.db, day, slot_code, staff_id)
        return hold is not None and self._is_active(hold, self.clock())

    def purge_expired(self) -> int:
        """Delete every unconfirmed hold past its expiry and commit."""
        try:
            purged = self.repo.delete_all_expired(self.db, self.clock())
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if purged:
            logger.info(f"🧹 Purged {purged} expired slot holds")
        return purged
