"""Fabrication service - production stage log for projects in fabrication"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models_project import FabricationUpdate, Project
from ...services.audit_service import AuditAction, AuditService, RequestMeta
from ...services.notification_service import NotificationCategory, NotificationService
from ...services.workflow import WorkflowChain
from ...shared.access import Actor, Role, assert_project_access, is_fabrication_member
from ...shared.errors import BadRequestError, ForbiddenError, NotFoundError
from ...shared.state_machine import FabricationStatus, ProjectStatus, fabrication_transitions
from ..projects.repository import ProjectRepository
from .repository import FabricationRepository
from .schemas import FabricationUpdateCreate

logger = logging.getLogger(__name__)


class FabricationService:
    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        workflow: Optional[WorkflowChain] = None,
    ):
        self.db = db
        self.repo = FabricationRepository()
        self.audit = audit or AuditService(db)
        self.notifications = notifications or NotificationService(db)
        self.workflow = workflow or WorkflowChain(db, self.audit, self.notifications)

    def _get_project(self, actor: Actor, project_id: int) -> Project:
        project = ProjectRepository.get(self.db, project_id)
        if not project:
            raise NotFoundError("Project not found", details={"projectId": project_id})
        assert_project_access(actor, project)
        return project

    def _current_status(self, project_id: int) -> tuple[str, Optional[FabricationUpdate]]:
        latest = self.repo.get_latest(self.db, project_id)
        return (latest.status if latest else FabricationStatus.QUEUED), latest

    def create_update(
        self,
        actor: Actor,
        project_id: int,
        data: FabricationUpdateCreate,
        meta: Optional[RequestMeta] = None,
    ) -> FabricationUpdate:
        """Log the next production stage; ``done`` completes the project."""
        project = self._get_project(actor, project_id)
        if not (actor.is_admin or is_fabrication_member(actor, project)):
            raise ForbiddenError("Only the assigned fabrication team can post updates")
        if project.status != ProjectStatus.FABRICATION:
            raise BadRequestError(
                "Project is not in fabrication", details={"status": project.status}
            )

        current, _ = self._current_status(project.id)
        fabrication_transitions.assert_transition(current, data.status)

        try:
            update = self.repo.create(
                self.db,
                project_id=project.id,
                status=data.status,
                notes=data.notes,
                photo_keys=list(data.photoKeys),
                updated_by_id=actor.id,
            )
            completed = self.workflow.after_fabrication_update(project, data.status)
            self.db.commit()
            self.db.refresh(update)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🏭 Project {project.id} fabrication: {current} → {data.status}")
        self.audit.record(
            AuditAction.FABRICATION_UPDATED,
            actor.id,
            "project",
            project.id,
            {"from": current, "to": data.status, "updateId": update.id},
            meta,
        )
        if completed:
            self.audit.record(
                AuditAction.PROJECT_COMPLETED,
                actor.id,
                "project",
                project.id,
                {"triggeredBy": "system", "reason": "fabrication_done"},
                meta,
            )
        self.notifications.notify(
            NotificationCategory.FABRICATION,
            "Project Completed" if completed else "Fabrication Update",
            f'"{project.title}" is complete!'
            if completed
            else f'"{project.title}" is now at {data.status.replace("_", " ")}.',
            f"/projects/{project.id}/fabrication",
            recipient_id=project.customer_id,
        )
        return update

    def list_updates(self, actor: Actor, project_id: int) -> list[FabricationUpdate]:
        project = self._get_project(actor, project_id)
        return self.repo.list_for_project(self.db, project.id)

    def get_latest_status(self, actor: Actor, project_id: int) -> dict:
        project = self._get_project(actor, project_id)
        current, latest = self._current_status(project.id)
        return {
            "projectId": project.id,
            "currentStatus": current,
            "latestUpdate": latest,
            "allowedNext": sorted(fabrication_transitions.allowed_from(current)),
        }
