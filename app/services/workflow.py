"""
Workflow chain: cross-entity auto-creation and auto-advance rules.

Two kinds of hooks live here:

* in-transaction advances (``after_engineers_assigned``, ``after_design_approved``,
  ``after_stage_verified``, ``after_fabrication_update``) flush inside the
  caller's transaction so the trigger and the advance commit together;
* follow-ups (``after_appointment_confirmed``, ``after_visit_report_submitted``)
  run after the trigger is committed, commit on their own, are idempotent and
  log failures instead of raising.

Every project/appointment advance goes through the same transition validator
a manual request would use.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..domain.appointments.repository import AppointmentRepository
from ..domain.projects.repository import ProjectRepository
from ..domain.reservations.service import ReservationManager
from ..domain.visit_reports.repository import VisitReportRepository
from ..models_appointment import Appointment, AppointmentType, VisitReport
from ..models_payment import PaymentPlan
from ..models_project import Project
from ..shared.access import Role
from ..shared.state_machine import (
    AppointmentStatus,
    FabricationStatus,
    PaymentStageStatus,
    ProjectStatus,
    VisitReportStatus,
    appointment_transitions,
    project_transitions,
)
from .audit_service import AuditAction, AuditService, RequestMeta
from .notification_service import NotificationCategory, NotificationService

logger = logging.getLogger(__name__)


def release_visit_hold(reservations: ReservationManager, appointment: Appointment) -> None:
    """On-site appointments own a staff hold; office visits never do."""
    if appointment.type == AppointmentType.OCULAR and appointment.sales_staff_id:
        reservations.release(appointment.date, appointment.slot_code, appointment.sales_staff_id)


class WorkflowChain:
    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        reservations: Optional[ReservationManager] = None,
    ):
        self.db = db
        self.audit = audit or AuditService(db)
        self.notifications = notifications or NotificationService(db)
        self.reservations = reservations or ReservationManager(db)

    # ========================================================================
    # IN-TRANSACTION ADVANCES
    # ========================================================================

    def advance_project(self, project: Project, to_status: str) -> None:
        project_transitions.assert_transition(project.status, to_status)
        logger.info(f"🔄 Project {project.id}: {project.status} → {to_status}")
        project.status = to_status
        self.db.flush()

    def after_engineers_assigned(self, project: Project) -> bool:
        if project.status != ProjectStatus.SUBMITTED:
            return False
        self.advance_project(project, ProjectStatus.BLUEPRINT)
        return True

    def after_design_approved(self, project: Project) -> bool:
        if project.status != ProjectStatus.BLUEPRINT:
            return False
        self.advance_project(project, ProjectStatus.APPROVED)
        return True

    def after_stage_verified(self, plan: PaymentPlan, project: Project) -> bool:
        all_verified = all(s.status == PaymentStageStatus.VERIFIED for s in plan.stages)
        if not all_verified or project.status != ProjectStatus.PAYMENT_PENDING:
            return False
        self.advance_project(project, ProjectStatus.FABRICATION)
        return True

    def after_fabrication_update(self, project: Project, fabrication_status: str) -> bool:
        if fabrication_status != FabricationStatus.DONE:
            return False
        self.advance_project(project, ProjectStatus.COMPLETED)
        return True

    # ========================================================================
    # COMMITTED FOLLOW-UPS
    # ========================================================================

    def after_appointment_confirmed(self, appointment: Appointment) -> Optional[VisitReport]:
        try:
            return self.ensure_visit_report(appointment)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create visit report for appointment {appointment.id}: {e}")
            return None

    def ensure_visit_report(self, appointment: Appointment) -> VisitReport:
        """Create the draft visit report for a confirmed appointment once."""
        existing = VisitReportRepository.get_by_appointment(self.db, appointment.id)
        if existing:
            return existing

        try:
            report = VisitReportRepository.create(
                self.db,
                appointment_id=appointment.id,
                customer_id=appointment.customer_id,
                sales_staff_id=appointment.sales_staff_id,
                status=VisitReportStatus.DRAFT,
                visit_type="ocular" if appointment.type == AppointmentType.OCULAR else "consultation",
                media_keys=[],
            )
            self.db.commit()
        except IntegrityError:
            # Concurrent confirm created it first
            self.db.rollback()
            return VisitReportRepository.get_by_appointment(self.db, appointment.id)

        logger.info(f"📝 Draft visit report {report.id} created for appointment {appointment.id}")
        self.audit.record(
            AuditAction.VISIT_REPORT_CREATED,
            appointment.sales_staff_id,
            "visit_report",
            report.id,
            {"appointmentId": appointment.id, "autoCreated": True},
        )
        return report

    def after_visit_report_submitted(
        self, report: VisitReport, actor_id: int, meta: Optional[RequestMeta] = None
    ) -> Optional[Project]:
        """Complete the visit's appointment, then make sure its project exists."""
        appointment = AppointmentRepository.get(self.db, report.appointment_id)
        if appointment is None:
            logger.warning(f"⚠️ Visit report {report.id} has no appointment {report.appointment_id}")
            return None

        try:
            self._complete_appointment(appointment, actor_id, meta)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Auto-complete of appointment {appointment.id} failed: {e}")

        try:
            return self._ensure_project(report, appointment, actor_id, meta)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Auto-create of project for appointment {appointment.id} failed: {e}")
            return None

    def _complete_appointment(
        self, appointment: Appointment, actor_id: int, meta: Optional[RequestMeta]
    ) -> None:
        if appointment.status != AppointmentStatus.CONFIRMED:
            return

        appointment_transitions.assert_transition(appointment.status, AppointmentStatus.COMPLETED)
        appointment.status = AppointmentStatus.COMPLETED
        release_visit_hold(self.reservations, appointment)
        self.db.commit()

        logger.info(f"✅ Appointment {appointment.id} completed by visit report submission")
        self.audit.record(
            AuditAction.APPOINTMENT_COMPLETED,
            actor_id,
            "appointment",
            appointment.id,
            {"triggeredBy": "system", "reason": "visit_report_submitted"},
            meta,
        )

    def _ensure_project(
        self,
        report: VisitReport,
        appointment: Appointment,
        actor_id: int,
        meta: Optional[RequestMeta],
    ) -> Project:
        existing = ProjectRepository.get_by_appointment(self.db, appointment.id)
        if existing:
            logger.info(f"ℹ️ Project {existing.id} already exists for appointment {appointment.id}")
            return existing

        try:
            project = ProjectRepository.create(
                self.db,
                appointment_id=appointment.id,
                customer_id=report.customer_id,
                sales_staff_id=report.sales_staff_id,
                title=f"Project - {appointment.customer_notes or 'Visit Report'}",
                service_type=report.preferred_design or "General Fabrication",
                description=report.customer_requirements or report.notes or "Created from visit report",
                site_address=appointment.customer_address or "TBD",
                measurements=report.measurements,
                material_type=report.materials,
                finish_color=report.finishes,
                quantity=1,
                notes=report.notes,
                status=ProjectStatus.DRAFT,
                engineer_ids=[],
                fabrication_assistant_ids=[],
                media_keys=list(report.media_keys or []),
            )
            self.advance_project(project, ProjectStatus.SUBMITTED)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return ProjectRepository.get_by_appointment(self.db, appointment.id)

        logger.info(f"✅ Project {project.id} created from visit report {report.id}")
        self.audit.record(
            AuditAction.PROJECT_CREATED,
            actor_id,
            "project",
            project.id,
            {"triggeredBy": "system", "reason": "visit_report_submitted", "visitReportId": report.id},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.PROJECT,
            "New Project from Visit Report",
            f'A new project "{project.title}" has been created from a visit report. Assign an engineer.',
            f"/projects/{project.id}",
            role=Role.ADMIN,
        )
        self.notifications.notify(
            NotificationCategory.PROJECT,
            "Project Created",
            "Your project has been created from the visit report. An engineer will be assigned shortly.",
            f"/projects/{project.id}",
            recipient_id=project.customer_id,
        )
        return project
