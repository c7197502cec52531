"""Slot hold repository - Database operations for (date, slot, staff) holds"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models_appointment import SlotHold


class SlotHoldRepository:
    """Repository for slot hold rows. Callers own the transaction."""

    @staticmethod
    def get(db: Session, day: date, slot_code: str, staff_id: int) -> Optional[SlotHold]:
        return (
            db.query(SlotHold)
            .filter(
                SlotHold.date == day,
                SlotHold.slot_code == slot_code,
                SlotHold.staff_id == staff_id,
            )
            .first()
        )

    @staticmethod
    def insert(db: Session, hold: SlotHold) -> SlotHold:
        """Insert and flush so the unique constraint is checked immediately"""
        db.add(hold)
        db.flush()
        return hold

    @staticmethod
    def delete(db: Session, day: date, slot_code: str, staff_id: int) -> int:
        return (
            db.query(SlotHold)
            .filter(
                SlotHold.date == day,
                SlotHold.slot_code == slot_code,
                SlotHold.staff_id == staff_id,
            )
            .delete(synchronize_session=False)
        )

    @staticmethod
    def delete_expired_for_key(
        db: Session, day: date, slot_code: str, staff_id: int, now: datetime
    ) -> int:
        return (
            db.query(SlotHold)
            .filter(
                SlotHold.date == day,
                SlotHold.slot_code == slot_code,
                SlotHold.staff_id == staff_id,
                SlotHold.confirmed.is_(False),
                SlotHold.expires_at <= now,
            )
            .delete(synchronize_session=False)
        )

    @staticmethod
    def delete_all_expired(db: Session, now: datetime) -> int:
        return (
            db.query(SlotHold)
            .filter(SlotHold.confirmed.is_(False), SlotHold.expires_at <= now)
            .delete(synchronize_session=False)
        )
