"""Project service - fabrication projects, staffing and manual transitions"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models_project import Project
from ...services.audit_service import AuditAction, AuditService, RequestMeta
from ...services.notification_service import NotificationCategory, NotificationService
from ...services.workflow import WorkflowChain
from ...shared.access import Actor, Role, assert_project_access, can_access_project, require_role
from ...shared.errors import BadRequestError, DuplicateEntryError, NotFoundError
from ...shared.state_machine import AppointmentStatus, ProjectStatus
from ..appointments.repository import AppointmentRepository
from ..users.repository import UserRepository
from .repository import ProjectRepository
from .schemas import ProjectCreate, ProjectUpdate

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (ProjectStatus.DRAFT, ProjectStatus.SUBMITTED)
CLOSED_STATUSES = (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED)

FIELD_MAP = {
    "title": "title",
    "serviceType": "service_type",
    "description": "description",
    "siteAddress": "site_address",
    "measurements": "measurements",
    "materialType": "material_type",
    "finishColor": "finish_color",
    "quantity": "quantity",
    "notes": "notes",
    "mediaKeys": "media_keys",
}

TRANSITION_ACTIONS = {
    ProjectStatus.CANCELLED: AuditAction.PROJECT_CANCELLED,
    ProjectStatus.COMPLETED: AuditAction.PROJECT_COMPLETED,
}


class ProjectService:
    """Service layer for project business logic"""

    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        workflow: Optional[WorkflowChain] = None,
    ):
        self.db = db
        self.repo = ProjectRepository()
        self.audit = audit or AuditService(db)
        self.notifications = notifications or NotificationService(db)
        self.workflow = workflow or WorkflowChain(db, self.audit, self.notifications)

    def _get_or_404(self, project_id: int) -> Project:
        project = self.repo.get(self.db, project_id)
        if not project:
            raise NotFoundError("Project not found", details={"projectId": project_id})
        return project

    # ========================================================================
    # READS
    # ========================================================================

    def get_project(self, actor: Actor, project_id: int) -> Project:
        project = self._get_or_404(project_id)
        assert_project_access(actor, project, extra_roles=(Role.CASHIER,))
        return project

    def list_projects(
        self,
        actor: Actor,
        status: Optional[str] = None,
        active_only: bool = False,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Project]:
        if actor.is_admin or actor.has_role(Role.CASHIER):
            return self.repo.list_filtered(
                self.db,
                status=status,
                active_only=active_only,
                search=search,
                limit=limit,
                offset=offset,
            )

        # Team membership lives in JSON columns, so filter with the capability predicate
        projects = self.repo.list_filtered(
            self.db, status=status, active_only=active_only, search=search, limit=None
        )
        visible = [p for p in projects if can_access_project(actor, p)]
        return visible[offset : offset + limit]

    # ========================================================================
    # CREATE / UPDATE / DELETE
    # ========================================================================

    def create_project(
        self, actor: Actor, data: ProjectCreate, meta: Optional[RequestMeta] = None
    ) -> Project:
        """Manual creation from a completed appointment (the workflow normally does this)"""
        require_role(actor, Role.SALES_STAFF, Role.APPOINTMENT_AGENT)
        appointment = AppointmentRepository.get(self.db, data.appointmentId)
        if not appointment:
            raise NotFoundError("Appointment not found", details={"appointmentId": data.appointmentId})
        if appointment.status != AppointmentStatus.COMPLETED:
            raise BadRequestError(
                "Projects can only be created from completed appointments",
                details={"appointmentStatus": appointment.status},
            )
        existing = self.repo.get_by_appointment(self.db, appointment.id)
        if existing:
            raise DuplicateEntryError(
                "A project already exists for this appointment", details={"projectId": existing.id}
            )

        try:
            project = self.repo.create(
                self.db,
                appointment_id=appointment.id,
                customer_id=appointment.customer_id,
                sales_staff_id=appointment.sales_staff_id,
                title=data.title,
                service_type=data.serviceType,
                description=data.description,
                site_address=data.siteAddress or appointment.customer_address,
                measurements=data.measurements,
                material_type=data.materialType,
                finish_color=data.finishColor,
                quantity=data.quantity,
                notes=data.notes,
                status=ProjectStatus.DRAFT,
                engineer_ids=[],
                fabrication_assistant_ids=[],
                media_keys=data.mediaKeys,
            )
            self.db.commit()
            self.db.refresh(project)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Project {project.id} created for appointment {appointment.id}")
        self.audit.record(
            AuditAction.PROJECT_CREATED,
            actor.id,
            "project",
            project.id,
            {"appointmentId": appointment.id, "triggeredBy": "user"},
            meta,
        )
        return project

    def update_project(
        self,
        actor: Actor,
        project_id: int,
        data: ProjectUpdate,
        meta: Optional[RequestMeta] = None,
    ) -> Project:
        require_role(actor, Role.SALES_STAFF, Role.ENGINEER)
        project = self._get_or_404(project_id)
        assert_project_access(actor, project)
        if project.status not in EDITABLE_STATUSES:
            raise BadRequestError(
                "Project details can only be edited while draft or submitted",
                details={"status": project.status},
            )

        changes = data.model_dump(exclude_unset=True)
        try:
            for field, column in FIELD_MAP.items():
                if field in changes and changes[field] is not None:
                    setattr(project, column, changes[field])
            self.db.commit()
            self.db.refresh(project)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.PROJECT_UPDATED,
            actor.id,
            "project",
            project.id,
            {"fields": sorted(changes)},
            meta,
        )
        return project

    def soft_delete_project(
        self, actor: Actor, project_id: int, meta: Optional[RequestMeta] = None
    ) -> None:
        require_role(actor, Role.ADMIN)
        project = self._get_or_404(project_id)
        try:
            self.repo.soft_delete(self.db, project)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🗑️ Project {project.id} soft-deleted by {actor.id}")
        self.audit.record(AuditAction.PROJECT_DELETED, actor.id, "project", project.id, {}, meta)

    # ========================================================================
    # STAFFING
    # ========================================================================

    def assign_engineers(
        self,
        actor: Actor,
        project_id: int,
        engineer_ids: list[int],
        meta: Optional[RequestMeta] = None,
    ) -> Project:
        """Assign design engineers; a submitted project moves into the blueprint phase."""
        require_role(actor, Role.ADMIN)
        project = self._get_or_404(project_id)
        if project.status in CLOSED_STATUSES:
            raise BadRequestError("Cannot assign engineers to a closed project")

        engineers = UserRepository.list_active_with_role(self.db, engineer_ids, Role.ENGINEER)
        missing = sorted(set(engineer_ids) - {e.id for e in engineers})
        if missing:
            raise NotFoundError("Engineer not found", details={"engineerIds": missing})

        try:
            project.engineer_ids = list(engineer_ids)
            advanced = self.workflow.after_engineers_assigned(project)
            self.db.commit()
            self.db.refresh(project)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.PROJECT_REASSIGNED,
            actor.id,
            "project",
            project.id,
            {"engineerIds": project.engineer_ids, "advancedToBlueprint": advanced},
            meta,
        )
        for engineer_id in project.engineer_ids:
            self.notifications.notify(
                NotificationCategory.PROJECT,
                "Project Assigned",
                f'You have been assigned to design "{project.title}".',
                f"/projects/{project.id}",
                recipient_id=engineer_id,
            )
        return project

    def assign_fabrication_staff(
        self,
        actor: Actor,
        project_id: int,
        lead_id: int,
        assistant_ids: list[int],
        meta: Optional[RequestMeta] = None,
    ) -> Project:
        require_role(actor, Role.ENGINEER)
        project = self._get_or_404(project_id)
        if project.status in CLOSED_STATUSES:
            raise BadRequestError("Cannot assign fabrication staff to a closed project")

        assistant_ids = [a for a in dict.fromkeys(assistant_ids) if a != lead_id]
        wanted = [lead_id, *assistant_ids]
        found = UserRepository.list_active_with_role(self.db, wanted, Role.FABRICATION_STAFF)
        missing = sorted(set(wanted) - {u.id for u in found})
        if missing:
            raise NotFoundError("Fabrication staff not found", details={"staffIds": missing})

        try:
            project.fabrication_lead_id = lead_id
            project.fabrication_assistant_ids = assistant_ids
            self.db.commit()
            self.db.refresh(project)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.FABRICATION_ASSIGNED,
            actor.id,
            "project",
            project.id,
            {"leadId": lead_id, "assistantIds": assistant_ids},
            meta,
        )
        for staff_id in wanted:
            self.notifications.notify(
                NotificationCategory.FABRICATION,
                "Fabrication Assignment",
                f'You have been assigned to fabricate "{project.title}".',
                f"/projects/{project.id}/fabrication",
                recipient_id=staff_id,
            )
        return project

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def transition_project(
        self,
        actor: Actor,
        project_id: int,
        to_status: str,
        reason: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> Project:
        """Manual status change; uses the same validated path as the workflow chain."""
        require_role(actor, Role.ENGINEER, Role.SALES_STAFF)
        project = self._get_or_404(project_id)
        assert_project_access(actor, project)
        from_status = project.status

        try:
            self.workflow.advance_project(project, to_status)
            if to_status == ProjectStatus.CANCELLED:
                project.cancel_reason = reason
            self.db.commit()
            self.db.refresh(project)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            TRANSITION_ACTIONS.get(to_status, AuditAction.PROJECT_UPDATED),
            actor.id,
            "project",
            project.id,
            {"from": from_status, "to": to_status, "reason": reason},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.PROJECT,
            "Project Status Updated",
            f'Your project "{project.title}" is now {to_status.replace("_", " ")}.',
            f"/projects/{project.id}",
            recipient_id=project.customer_id,
        )
        return project
