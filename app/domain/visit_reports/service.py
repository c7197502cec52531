"""Visit report service - site findings captured by the assigned sales staff"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models_appointment import VisitReport
from ...services.audit_service import AuditAction, AuditService, RequestMeta
from ...services.notification_service import NotificationCategory, NotificationService
from ...services.workflow import WorkflowChain
from ...shared.access import Actor, Role, require_role
from ...shared.errors import BadRequestError, ForbiddenError, NotFoundError
from ...shared.state_machine import VisitReportStatus, visit_report_transitions
from .repository import VisitReportRepository
from .schemas import VisitReportUpdate

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (VisitReportStatus.DRAFT, VisitReportStatus.RETURNED)

FIELD_MAP = {
    "measurements": "measurements",
    "materials": "materials",
    "finishes": "finishes",
    "preferredDesign": "preferred_design",
    "customerRequirements": "customer_requirements",
    "notes": "notes",
    "mediaKeys": "media_keys",
}


class VisitReportService:
    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        workflow: Optional[WorkflowChain] = None,
    ):
        self.db = db
        self.repo = VisitReportRepository()
        self.audit = audit or AuditService(db)
        self.notifications = notifications or NotificationService(db)
        self.workflow = workflow or WorkflowChain(db, self.audit, self.notifications)

    def _get_or_404(self, report_id: int) -> VisitReport:
        report = self.repo.get(self.db, report_id)
        if not report:
            raise NotFoundError("Visit report not found", details={"visitReportId": report_id})
        return report

    @staticmethod
    def _assert_assigned(actor: Actor, report: VisitReport) -> None:
        if report.sales_staff_id != actor.id:
            raise ForbiddenError("Only the assigned sales staff can modify this visit report")

    @staticmethod
    def _assert_can_view(actor: Actor, report: VisitReport) -> None:
        if actor.is_admin or actor.has_role(Role.ENGINEER, Role.APPOINTMENT_AGENT):
            return
        if report.sales_staff_id == actor.id or report.customer_id == actor.id:
            return
        raise ForbiddenError("You do not have access to this visit report")

    # ========================================================================
    # READS
    # ========================================================================

    def get_report(self, actor: Actor, report_id: int) -> VisitReport:
        report = self._get_or_404(report_id)
        self._assert_can_view(actor, report)
        return report

    def get_by_appointment(self, actor: Actor, appointment_id: int) -> VisitReport:
        report = self.repo.get_by_appointment(self.db, appointment_id)
        if not report:
            raise NotFoundError(
                "Visit report not found for appointment", details={"appointmentId": appointment_id}
            )
        self._assert_can_view(actor, report)
        return report

    def list_reports(
        self, actor: Actor, status: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> list[VisitReport]:
        require_role(actor, Role.SALES_STAFF, Role.ENGINEER, Role.APPOINTMENT_AGENT)
        staff_filter = None
        if not (actor.is_admin or actor.has_role(Role.ENGINEER, Role.APPOINTMENT_AGENT)):
            staff_filter = actor.id
        return self.repo.list_filtered(
            self.db, sales_staff_id=staff_filter, status=status, limit=limit, offset=offset
        )

    # ========================================================================
    # EDITING & SUBMISSION
    # ========================================================================

    def update_report(
        self,
        actor: Actor,
        report_id: int,
        data: VisitReportUpdate,
        meta: Optional[RequestMeta] = None,
    ) -> VisitReport:
        report = self._get_or_404(report_id)
        self._assert_assigned(actor, report)
        if report.status not in EDITABLE_STATUSES:
            raise BadRequestError(
                "Only draft or returned visit reports can be edited",
                details={"status": report.status},
            )

        changes = data.model_dump(exclude_unset=True)
        try:
            for field, column in FIELD_MAP.items():
                if field in changes:
                    setattr(report, column, changes[field])
            self.db.commit()
            self.db.refresh(report)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.VISIT_REPORT_UPDATED,
            actor.id,
            "visit_report",
            report.id,
            {"fields": sorted(changes)},
            meta,
        )
        return report

    def submit_report(
        self, actor: Actor, report_id: int, meta: Optional[RequestMeta] = None
    ) -> VisitReport:
        """Submit the report, complete its appointment and seed the project.

        A replayed submission of an already submitted report skips the status
        change and re-runs the downstream steps, which are idempotent.
        """
        report = self._get_or_404(report_id)
        self._assert_assigned(actor, report)

        if report.status == VisitReportStatus.SUBMITTED:
            logger.info(f"ℹ️ Visit report {report.id} already submitted, re-running follow-ups")
            self.workflow.after_visit_report_submitted(report, actor.id, meta)
            return report

        visit_report_transitions.assert_transition(report.status, VisitReportStatus.SUBMITTED)
        try:
            report.status = VisitReportStatus.SUBMITTED
            report.return_reason = None
            self.db.commit()
            self.db.refresh(report)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📤 Visit report {report.id} submitted by {actor.id}")
        self.audit.record(
            AuditAction.VISIT_REPORT_SUBMITTED,
            actor.id,
            "visit_report",
            report.id,
            {"appointmentId": report.appointment_id},
            meta,
        )
        self.workflow.after_visit_report_submitted(report, actor.id, meta)
        self.notifications.notify(
            NotificationCategory.PROJECT,
            "Visit Report Submitted",
            "A visit report has been submitted and is ready for review.",
            f"/visit-reports/{report.id}",
            role=Role.ENGINEER,
        )
        return report

    # ========================================================================
    # REVIEW
    # ========================================================================

    def return_report(
        self,
        actor: Actor,
        report_id: int,
        reason: str,
        meta: Optional[RequestMeta] = None,
    ) -> VisitReport:
        require_role(actor, Role.ENGINEER)
        report = self._get_or_404(report_id)
        visit_report_transitions.assert_transition(report.status, VisitReportStatus.RETURNED)
        try:
            report.status = VisitReportStatus.RETURNED
            report.return_reason = reason
            self.db.commit()
            self.db.refresh(report)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.VISIT_REPORT_RETURNED,
            actor.id,
            "visit_report",
            report.id,
            {"reason": reason},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.PROJECT,
            "Visit Report Returned",
            f"Your visit report was returned for changes: {reason}",
            f"/visit-reports/{report.id}",
            recipient_id=report.sales_staff_id,
        )
        return report

    def mark_completed(
        self, actor: Actor, report_id: int, meta: Optional[RequestMeta] = None
    ) -> VisitReport:
        require_role(actor, Role.ENGINEER)
        report = self._get_or_404(report_id)
        visit_report_transitions.assert_transition(report.status, VisitReportStatus.COMPLETED)
        try:
            report.status = VisitReportStatus.COMPLETED
            self.db.commit()
            self.db.refresh(report)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.VISIT_REPORT_COMPLETED, actor.id, "visit_report", report.id, {}, meta
        )
        return report
