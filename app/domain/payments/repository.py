"""Payment repository - plans, stages, proof records and receipt counters"""

from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ...models_payment import Payment, PaymentPlan, PaymentStage, ReceiptCounter
from ...shared.state_machine import PaymentStageStatus

# dialects with INSERT .. ON CONFLICT DO UPDATE .. RETURNING
UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class PaymentRepository:
    # ------------------------------------------------------------------
    # Plans & stages
    # ------------------------------------------------------------------

    @staticmethod
    def get_plan_by_project(db: Session, project_id: int) -> Optional[PaymentPlan]:
        return db.query(PaymentPlan).filter(PaymentPlan.project_id == project_id).first()

    @staticmethod
    def create_plan(db: Session, plan: PaymentPlan) -> PaymentPlan:
        db.add(plan)
        db.flush()
        return plan

    @staticmethod
    def get_stage(db: Session, stage_id: int) -> Optional[PaymentStage]:
        return db.query(PaymentStage).filter(PaymentStage.id == stage_id).first()

    @staticmethod
    def get_stage_for_update(db: Session, stage_id: int) -> Optional[PaymentStage]:
        return db.query(PaymentStage).filter(PaymentStage.id == stage_id).with_for_update().first()

    # ------------------------------------------------------------------
    # Payment records
    # ------------------------------------------------------------------

    @staticmethod
    def get_payment(db: Session, payment_id: int) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.id == payment_id).first()

    @staticmethod
    def get_payment_for_update(db: Session, payment_id: int) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.id == payment_id).with_for_update().first()

    @staticmethod
    def get_by_idempotency_key(db: Session, key: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.idempotency_key == key).first()

    @staticmethod
    def create_payment(db: Session, **fields) -> Payment:
        payment = Payment(**fields)
        db.add(payment)
        db.flush()
        return payment

    @staticmethod
    def has_payments(db: Session, project_id: int) -> bool:
        return db.query(Payment.id).filter(Payment.project_id == project_id).first() is not None

    @staticmethod
    def list_for_project(db: Session, project_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.project_id == project_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def list_pending(db: Session, limit: int = 50, offset: int = 0) -> list[Payment]:
        """Proofs waiting for a cashier, oldest first"""
        return (
            db.query(Payment)
            .filter(Payment.status == PaymentStageStatus.PROOF_SUBMITTED)
            .order_by(Payment.id.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    @staticmethod
    def next_receipt_seq(db: Session, year: int) -> int:
        """Increment and return the year's receipt sequence in one upsert statement."""
        insert = UPSERT_INSERTS[db.get_bind().dialect.name]
        stmt = (
            insert(ReceiptCounter)
            .values(year=year, last_seq=1)
            .on_conflict_do_update(
                index_elements=[ReceiptCounter.year],
                set_={"last_seq": ReceiptCounter.last_seq + 1},
            )
            .returning(ReceiptCounter.last_seq)
        )
        return db.execute(stmt).scalar_one()
