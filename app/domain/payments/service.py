"""
Payment reconciliation engine.

A project's price is split into ordered stages by percentage. Customers
submit proofs against a stage; a cashier verifies or declines each proof.

Verification credits the proof to its stage. A short payment leaves the
stage pending with its remaining balance; an overpayment verifies the stage
and the excess is carried forward to later pending stages in order, settling
them when it covers their balance. The first verified stage locks the plan.
Every verified proof gets a receipt number ``PREFIX-YEAR-NNNNN`` from a
per-year counter.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import PERCENTAGE_TOLERANCE, RECEIPT_PREFIX
from ...models_payment import Payment, PaymentPlan, PaymentStage
from ...models_project import Project
from ...services.audit_service import AuditAction, AuditService, RequestMeta
from ...services.notification_service import NotificationCategory, NotificationService
from ...services.workflow import WorkflowChain
from ...shared.access import Actor, Role, assert_project_access, require_role
from ...shared.dates import utcnow
from ...shared.errors import (
    BadRequestError,
    ConflictError,
    DuplicateEntryError,
    ForbiddenError,
    NotFoundError,
    PlanImmutableError,
    ValidationFailedError,
)
from ...shared.state_machine import PaymentStageStatus, ProjectStatus, payment_stage_transitions
from ..projects.repository import ProjectRepository
from .repository import PaymentRepository
from .schemas import PaymentPlanCreate, PaymentPlanUpdate, PaymentProofSubmit

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
SUBMITTABLE_STAGE_STATUSES = (PaymentStageStatus.PENDING, PaymentStageStatus.DECLINED)


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def build_stages(total: Decimal, percentages: list[Decimal]) -> list[PaymentStage]:
    """Stage rows for ``total`` split by ``percentages`` (must sum to 100)."""
    if not percentages:
        raise ValidationFailedError("At least one stage is required")
    percentages = [Decimal(str(p)) for p in percentages]
    if any(p <= 0 for p in percentages):
        raise ValidationFailedError("Stage percentages must be positive")

    percentage_sum = sum(percentages, Decimal("0"))
    if abs(percentage_sum - Decimal("100")) > Decimal(str(PERCENTAGE_TOLERANCE)):
        raise ValidationFailedError(
            "Stage percentages must add up to 100",
            details={"sum": str(percentage_sum)},
        )

    total = to_money(total)
    single = len(percentages) == 1
    stages = []
    for position, pct in enumerate(percentages, start=1):
        amount = to_money(total * pct / Decimal("100"))
        stages.append(
            PaymentStage(
                position=position,
                label="Full Payment" if single else f"Stage {position}",
                percentage=pct,
                amount=amount,
                status=PaymentStageStatus.PENDING,
                amount_paid=ZERO,
                credit_applied=ZERO,
                remaining_balance=amount,
            )
        )
    return stages


class PaymentService:
    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        workflow: Optional[WorkflowChain] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.repo = PaymentRepository()
        self.audit = audit or AuditService(db)
        self.notifications = notifications or NotificationService(db)
        self.workflow = workflow or WorkflowChain(db, self.audit, self.notifications)
        self.clock = clock

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _get_project(self, project_id: int) -> Project:
        project = ProjectRepository.get(self.db, project_id)
        if not project:
            raise NotFoundError("Project not found", details={"projectId": project_id})
        return project

    def _get_payment(self, payment_id: int, for_update: bool = False) -> Payment:
        if for_update:
            payment = self.repo.get_payment_for_update(self.db, payment_id)
        else:
            payment = self.repo.get_payment(self.db, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", details={"paymentId": payment_id})
        return payment

    def _get_plan(self, project_id: int) -> PaymentPlan:
        plan = self.repo.get_plan_by_project(self.db, project_id)
        if not plan:
            raise NotFoundError("Payment plan not found", details={"projectId": project_id})
        return plan

    def _next_receipt_number(self, year: int) -> str:
        seq = self.repo.next_receipt_seq(self.db, year)
        return f"{RECEIPT_PREFIX}-{year}-{seq:05d}"

    @staticmethod
    def _move_stage(stage: PaymentStage, to_status: str) -> None:
        payment_stage_transitions.assert_transition(stage.status, to_status)
        stage.status = to_status

    # ========================================================================
    # PLANS
    # ========================================================================

    def create_payment_plan(
        self,
        actor: Actor,
        project_id: int,
        data: PaymentPlanCreate,
        meta: Optional[RequestMeta] = None,
    ) -> PaymentPlan:
        require_role(actor, Role.CASHIER)
        project = self._get_project(project_id)
        existing = self.repo.get_plan_by_project(self.db, project.id)
        if existing:
            raise DuplicateEntryError(
                "A payment plan already exists for this project", details={"planId": existing.id}
            )
        if project.status != ProjectStatus.APPROVED:
            raise BadRequestError(
                "Payment plans can only be created for approved projects",
                details={"status": project.status},
            )

        stages = build_stages(data.totalAmount, data.stagePercentages)
        try:
            plan = self.repo.create_plan(
                self.db,
                PaymentPlan(
                    project_id=project.id,
                    total_amount=to_money(data.totalAmount),
                    is_pay_in_full=len(stages) == 1,
                    is_immutable=False,
                    created_by_id=actor.id,
                    stages=stages,
                ),
            )
            self.workflow.advance_project(project, ProjectStatus.PAYMENT_PENDING)
            self.db.commit()
            self.db.refresh(plan)
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateEntryError("A payment plan already exists for this project") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"💳 Payment plan {plan.id} created for project {project.id}: {len(stages)} stage(s)")
        self.audit.record(
            AuditAction.PAYMENT_PLAN_CREATED,
            actor.id,
            "payment_plan",
            plan.id,
            {
                "projectId": project.id,
                "totalAmount": str(plan.total_amount),
                "percentages": [str(s.percentage) for s in plan.stages],
            },
            meta,
        )
        self.notifications.notify(
            NotificationCategory.PAYMENT,
            "Payment Plan Ready",
            f'The payment plan for "{project.title}" is ready. Total: {plan.total_amount}.',
            f"/projects/{project.id}/payments",
            recipient_id=project.customer_id,
        )
        return plan

    def update_payment_plan(
        self,
        actor: Actor,
        project_id: int,
        data: PaymentPlanUpdate,
        meta: Optional[RequestMeta] = None,
    ) -> PaymentPlan:
        """Rebuild the stages. Locked for everyone once any stage is verified."""
        plan = self._get_plan(project_id)
        if plan.is_immutable:
            raise PlanImmutableError(details={"planId": plan.id})
        require_role(actor, Role.CASHIER)
        if self.repo.has_payments(self.db, project_id):
            raise ConflictError(
                "Payment plan has submitted proofs and cannot be restructured",
                details={"planId": plan.id},
            )

        total = data.totalAmount if data.totalAmount is not None else plan.total_amount
        percentages = data.stagePercentages or [s.percentage for s in plan.stages]
        stages = build_stages(total, percentages)
        try:
            plan.stages.clear()
            self.db.flush()
            plan.stages.extend(stages)
            plan.total_amount = to_money(total)
            plan.is_pay_in_full = len(stages) == 1
            self.db.commit()
            self.db.refresh(plan)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.PAYMENT_PLAN_UPDATED,
            actor.id,
            "payment_plan",
            plan.id,
            {
                "totalAmount": str(plan.total_amount),
                "percentages": [str(s.percentage) for s in plan.stages],
            },
            meta,
        )
        return plan

    def get_plan_for_project(self, actor: Actor, project_id: int) -> PaymentPlan:
        assert_project_access(actor, self._get_project(project_id), extra_roles=(Role.CASHIER,))
        return self._get_plan(project_id)

    # ========================================================================
    # PROOFS
    # ========================================================================

    def submit_payment_proof(
        self,
        actor: Actor,
        stage_id: int,
        data: PaymentProofSubmit,
        idempotency_key: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> Payment:
        """Record a proof against a stage; amounts move only on verification."""
        require_role(actor, Role.CUSTOMER)
        if idempotency_key:
            replay = self.repo.get_by_idempotency_key(self.db, idempotency_key)
            if replay:
                if replay.stage_id != stage_id:
                    raise ConflictError("Idempotency key was already used for another stage")
                logger.info(f"ℹ️ Replayed payment proof {replay.id} for key {idempotency_key}")
                return replay

        stage = self.repo.get_stage(self.db, stage_id)
        if not stage:
            raise NotFoundError("Payment stage not found", details={"stageId": stage_id})
        project = self._get_project(stage.plan.project_id)
        if project.customer_id != actor.id:
            raise ForbiddenError("You can only pay for your own projects")
        if stage.status not in SUBMITTABLE_STAGE_STATUSES:
            raise BadRequestError(
                "This stage is not accepting payments", details={"status": stage.status}
            )

        try:
            payment = self.repo.create_payment(
                self.db,
                project_id=project.id,
                stage_id=stage.id,
                method=data.method,
                amount_paid=to_money(data.amountPaid),
                reference_number=data.referenceNumber,
                proof_key=data.proofKey,
                status=PaymentStageStatus.PROOF_SUBMITTED,
                idempotency_key=idempotency_key,
                excess_credit=ZERO,
            )
            self._move_stage(stage, PaymentStageStatus.PROOF_SUBMITTED)
            self.db.commit()
            self.db.refresh(payment)
        except IntegrityError as e:
            self.db.rollback()
            replay = idempotency_key and self.repo.get_by_idempotency_key(self.db, idempotency_key)
            if replay:
                return replay
            raise ConflictError("Payment could not be recorded") from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📤 Payment proof {payment.id} submitted for stage {stage.id}: {payment.amount_paid}")
        self.audit.record(
            AuditAction.PAYMENT_PROOF_SUBMITTED,
            actor.id,
            "payment",
            payment.id,
            {"stageId": stage.id, "amount": str(payment.amount_paid), "method": payment.method},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.PAYMENT,
            "Payment Proof Submitted",
            f'A {payment.method} payment of {payment.amount_paid} was submitted for "{project.title}".',
            f"/payments/{payment.id}",
            role=Role.CASHIER,
        )
        return payment

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def _carry_forward(self, plan: PaymentPlan, source: PaymentStage, excess: Decimal) -> Decimal:
        """Apply ``excess`` to pending stages in order; return what is left."""
        for stage in plan.stages:
            if excess <= 0:
                break
            if stage.id == source.id or stage.status != PaymentStageStatus.PENDING:
                continue
            if stage.remaining_balance <= 0:
                continue

            applied = min(excess, stage.remaining_balance)
            stage.credit_applied += applied
            stage.amount_paid += applied
            stage.remaining_balance -= applied
            excess -= applied
            logger.info(f"↪️ Carried {applied} credit to stage {stage.id} ({stage.label})")
            if stage.remaining_balance == 0:
                self._move_stage(stage, PaymentStageStatus.VERIFIED)
        return excess

    def verify_payment(
        self, actor: Actor, payment_id: int, meta: Optional[RequestMeta] = None
    ) -> Payment:
        """Credit a proof to its stage and carry any overpayment forward.

        Verifying an already verified payment returns it unchanged, so a
        retried request never double-counts or issues a second receipt.
        """
        require_role(actor, Role.CASHIER)
        payment = self._get_payment(payment_id, for_update=True)
        if payment.status == PaymentStageStatus.VERIFIED:
            logger.info(f"ℹ️ Payment {payment.id} already verified ({payment.receipt_number})")
            return payment
        payment_stage_transitions.assert_transition(payment.status, PaymentStageStatus.VERIFIED)

        stage = self.repo.get_stage_for_update(self.db, payment.stage_id)
        plan = stage.plan
        project = self._get_project(plan.project_id)
        overshoot = ZERO
        try:
            paid_so_far = stage.amount_paid + payment.amount_paid
            remaining = stage.amount - paid_so_far

            if remaining <= 0:
                # The stage keeps what settles it; the overshoot travels on as credit
                stage.amount_paid = stage.amount
                stage.remaining_balance = ZERO
                if stage.status != PaymentStageStatus.VERIFIED:
                    self._move_stage(stage, PaymentStageStatus.VERIFIED)
                overshoot = -remaining
            else:
                stage.amount_paid = paid_so_far
                stage.remaining_balance = remaining
                self._move_stage(stage, PaymentStageStatus.PENDING)

            payment.excess_credit = overshoot
            unapplied = self._carry_forward(plan, stage, overshoot)

            if not plan.is_immutable and any(
                s.status == PaymentStageStatus.VERIFIED for s in plan.stages
            ):
                plan.is_immutable = True
                logger.info(f"🔒 Payment plan {plan.id} locked")

            verified_at = self.clock()
            payment.status = PaymentStageStatus.VERIFIED
            payment.verified_by_id = actor.id
            payment.verified_at = verified_at
            payment.receipt_number = self._next_receipt_number(verified_at.year)

            advanced = self.workflow.after_stage_verified(plan, project)
            self.db.commit()
            self.db.refresh(payment)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"✅ Payment {payment.id} verified: {payment.amount_paid} → stage {stage.id} "
            f"({stage.status}), receipt {payment.receipt_number}"
        )
        self.audit.record(
            AuditAction.PAYMENT_VERIFIED,
            actor.id,
            "payment",
            payment.id,
            {
                "stageId": stage.id,
                "stageStatus": stage.status,
                "amount": str(payment.amount_paid),
                "excessCredit": str(overshoot),
                "unappliedCredit": str(unapplied),
                "receiptNumber": payment.receipt_number,
                "projectAdvanced": advanced,
            },
            meta,
        )
        self.notifications.notify(
            NotificationCategory.PAYMENT,
            "Payment Verified",
            f"Your payment of {payment.amount_paid} was verified. Receipt: {payment.receipt_number}.",
            f"/projects/{project.id}/payments",
            recipient_id=project.customer_id,
        )
        return payment

    def decline_payment(
        self,
        actor: Actor,
        payment_id: int,
        reason: str,
        meta: Optional[RequestMeta] = None,
    ) -> Payment:
        require_role(actor, Role.CASHIER)
        payment = self._get_payment(payment_id, for_update=True)
        payment_stage_transitions.assert_transition(payment.status, PaymentStageStatus.DECLINED)
        stage = self.repo.get_stage_for_update(self.db, payment.stage_id)

        try:
            payment.status = PaymentStageStatus.DECLINED
            payment.decline_reason = reason
            self._move_stage(stage, PaymentStageStatus.DECLINED)
            self.db.commit()
            self.db.refresh(payment)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"❌ Payment {payment.id} declined: {reason}")
        self.audit.record(
            AuditAction.PAYMENT_DECLINED,
            actor.id,
            "payment",
            payment.id,
            {"stageId": stage.id, "reason": reason},
            meta,
        )
        project = self._get_project(payment.project_id)
        self.notifications.notify(
            NotificationCategory.PAYMENT,
            "Payment Declined",
            f"Your payment for {stage.label} was declined: {reason}. Please submit a new proof.",
            f"/projects/{project.id}/payments",
            recipient_id=project.customer_id,
        )
        return payment

    # ========================================================================
    # READS
    # ========================================================================

    def get_payment(self, actor: Actor, payment_id: int) -> Payment:
        payment = self._get_payment(payment_id)
        assert_project_access(actor, self._get_project(payment.project_id), extra_roles=(Role.CASHIER,))
        return payment

    def list_payments_for_project(self, actor: Actor, project_id: int) -> list[Payment]:
        assert_project_access(actor, self._get_project(project_id), extra_roles=(Role.CASHIER,))
        return self.repo.list_for_project(self.db, project_id)

    def list_pending_payments(self, actor: Actor, limit: int = 50, offset: int = 0) -> list[Payment]:
        require_role(actor, Role.CASHIER)
        return self.repo.list_pending(self.db, limit, offset)
