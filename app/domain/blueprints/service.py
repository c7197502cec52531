"""Blueprint service - design package upload, review and revisions

A design package is versioned per project. The customer reviews the latest
version and approves the drawing and the costing separately; once both are
approved the package is approved and the project leaves the blueprint phase.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...config import MAX_DESIGN_REVISIONS
from ...models_project import Blueprint, Project
from ...services.audit_service import AuditAction, AuditService, RequestMeta
from ...services.notification_service import NotificationCategory, NotificationService
from ...services.workflow import WorkflowChain
from ...shared.access import Actor, Role, assert_project_access, require_role
from ...shared.errors import (
    BadRequestError,
    DuplicateEntryError,
    ErrorCode,
    ForbiddenError,
    LimitReachedError,
    NotFoundError,
)
from ...shared.state_machine import BlueprintStatus, ProjectStatus, blueprint_transitions
from ..projects.repository import ProjectRepository
from .repository import BlueprintRepository
from .schemas import BlueprintUpload

logger = logging.getLogger(__name__)

UPLOADABLE_PROJECT_STATUSES = (ProjectStatus.SUBMITTED, ProjectStatus.BLUEPRINT)
MAX_VERSIONS = MAX_DESIGN_REVISIONS + 1


class BlueprintService:
    def __init__(
        self,
        db: Session,
        audit: Optional[AuditService] = None,
        notifications: Optional[NotificationService] = None,
        workflow: Optional[WorkflowChain] = None,
    ):
        self.db = db
        self.repo = BlueprintRepository()
        self.audit = audit or AuditService(db)
        self.notifications = notifications or NotificationService(db)
        self.workflow = workflow or WorkflowChain(db, self.audit, self.notifications)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _get_project(self, actor: Actor, project_id: int) -> Project:
        project = ProjectRepository.get(self.db, project_id)
        if not project:
            raise NotFoundError("Project not found", details={"projectId": project_id})
        assert_project_access(actor, project)
        return project

    def _get_with_project(self, actor: Actor, blueprint_id: int) -> tuple[Blueprint, Project]:
        blueprint = self.repo.get(self.db, blueprint_id)
        if not blueprint:
            raise NotFoundError("Blueprint not found", details={"blueprintId": blueprint_id})
        return blueprint, self._get_project(actor, blueprint.project_id)

    @staticmethod
    def _assert_customer(actor: Actor, project: Project) -> None:
        if project.customer_id != actor.id:
            raise ForbiddenError("Only the project's customer can review its design")

    def _assert_latest(self, blueprint: Blueprint) -> None:
        latest = self.repo.get_latest(self.db, blueprint.project_id)
        if latest.id != blueprint.id:
            raise BadRequestError(
                "Only the latest design version can be reviewed",
                details={"latestVersion": latest.version},
            )

    def _notify_engineers(self, project: Project, title: str, message: str) -> None:
        for engineer_id in project.engineer_ids or []:
            self.notifications.notify(
                NotificationCategory.BLUEPRINT,
                title,
                message,
                f"/projects/{project.id}/blueprints",
                recipient_id=engineer_id,
            )

    # ========================================================================
    # READS
    # ========================================================================

    def get_blueprint(self, actor: Actor, blueprint_id: int) -> Blueprint:
        blueprint, _ = self._get_with_project(actor, blueprint_id)
        return blueprint

    def list_for_project(self, actor: Actor, project_id: int) -> list[Blueprint]:
        self._get_project(actor, project_id)
        return self.repo.list_for_project(self.db, project_id)

    def get_latest(self, actor: Actor, project_id: int) -> Blueprint:
        self._get_project(actor, project_id)
        latest = self.repo.get_latest(self.db, project_id)
        if not latest:
            raise NotFoundError("No design uploaded yet", details={"projectId": project_id})
        return latest

    # ========================================================================
    # UPLOADS
    # ========================================================================

    def upload_blueprint(
        self,
        actor: Actor,
        project_id: int,
        data: BlueprintUpload,
        meta: Optional[RequestMeta] = None,
    ) -> Blueprint:
        """First version of the design package"""
        require_role(actor, Role.ENGINEER)
        project = self._get_project(actor, project_id)
        if project.status not in UPLOADABLE_PROJECT_STATUSES:
            raise BadRequestError(
                "Designs can only be uploaded while the project is submitted or in blueprint",
                details={"status": project.status},
            )
        if self.repo.get_latest(self.db, project.id):
            raise DuplicateEntryError("A design already exists; upload a revision instead")

        try:
            blueprint = self.repo.create(
                self.db,
                project_id=project.id,
                version=1,
                status=BlueprintStatus.UPLOADED,
                blueprint_key=data.blueprintKey,
                costing_key=data.costingKey,
                quotation=data.quotation,
                revision_ref_keys=[],
                uploaded_by_id=actor.id,
            )
            if project.status == ProjectStatus.SUBMITTED:
                self.workflow.advance_project(project, ProjectStatus.BLUEPRINT)
            self.db.commit()
            self.db.refresh(blueprint)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📐 Blueprint v1 uploaded for project {project.id}")
        self.audit.record(
            AuditAction.BLUEPRINT_UPLOADED,
            actor.id,
            "blueprint",
            blueprint.id,
            {"projectId": project.id, "version": 1},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.BLUEPRINT,
            "Design Ready for Review",
            f'The design for "{project.title}" is ready for your review.',
            f"/projects/{project.id}/blueprints",
            recipient_id=project.customer_id,
        )
        return blueprint

    def upload_revision(
        self,
        actor: Actor,
        project_id: int,
        data: BlueprintUpload,
        meta: Optional[RequestMeta] = None,
    ) -> Blueprint:
        require_role(actor, Role.ENGINEER)
        project = self._get_project(actor, project_id)
        current = self.repo.get_latest(self.db, project.id)
        if not current:
            raise NotFoundError("No design uploaded yet", details={"projectId": project.id})
        blueprint_transitions.assert_transition(current.status, BlueprintStatus.REVISION_UPLOADED)
        if current.version >= MAX_VERSIONS:
            raise LimitReachedError(
                f"Maximum of {MAX_DESIGN_REVISIONS} design revisions reached",
                code=ErrorCode.MAX_REVISIONS_REACHED,
                details={"version": current.version},
            )

        try:
            current.status = BlueprintStatus.REVISION_UPLOADED
            blueprint = self.repo.create(
                self.db,
                project_id=project.id,
                version=current.version + 1,
                status=BlueprintStatus.UPLOADED,
                blueprint_key=data.blueprintKey,
                costing_key=data.costingKey or current.costing_key,
                quotation=data.quotation if data.quotation is not None else current.quotation,
                revision_ref_keys=[],
                uploaded_by_id=actor.id,
            )
            self.db.commit()
            self.db.refresh(blueprint)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"📐 Blueprint v{blueprint.version} uploaded for project {project.id}")
        self.audit.record(
            AuditAction.BLUEPRINT_REVISION_UPLOADED,
            actor.id,
            "blueprint",
            blueprint.id,
            {"projectId": project.id, "version": blueprint.version, "previousId": current.id},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.BLUEPRINT,
            "Revised Design Ready",
            f'Version {blueprint.version} of the design for "{project.title}" is ready for review.',
            f"/projects/{project.id}/blueprints",
            recipient_id=project.customer_id,
        )
        return blueprint

    # ========================================================================
    # CUSTOMER REVIEW
    # ========================================================================

    def approve_component(
        self,
        actor: Actor,
        blueprint_id: int,
        component: str,
        meta: Optional[RequestMeta] = None,
    ) -> Blueprint:
        """Approve the drawing or the costing; both approved closes the review."""
        blueprint, project = self._get_with_project(actor, blueprint_id)
        self._assert_customer(actor, project)
        self._assert_latest(blueprint)
        if blueprint.status != BlueprintStatus.UPLOADED:
            raise BadRequestError(
                "This design is not awaiting review", details={"status": blueprint.status}
            )

        fully_approved = False
        try:
            if component == "blueprint":
                blueprint.blueprint_approved = True
            else:
                blueprint.costing_approved = True

            if blueprint.blueprint_approved and blueprint.costing_approved:
                blueprint_transitions.assert_transition(blueprint.status, BlueprintStatus.APPROVED)
                blueprint.status = BlueprintStatus.APPROVED
                self.workflow.after_design_approved(project)
                fully_approved = True
            self.db.commit()
            self.db.refresh(blueprint)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.BLUEPRINT_APPROVED,
            actor.id,
            "blueprint",
            blueprint.id,
            {"component": component, "fullyApproved": fully_approved},
            meta,
        )
        if fully_approved:
            logger.info(f"✅ Design v{blueprint.version} approved for project {project.id}")
            self._notify_engineers(
                project,
                "Design Approved",
                f'The customer approved the design for "{project.title}".',
            )
        return blueprint

    def request_revision(
        self,
        actor: Actor,
        blueprint_id: int,
        notes: str,
        reference_keys: Optional[list[str]] = None,
        meta: Optional[RequestMeta] = None,
    ) -> Blueprint:
        blueprint, project = self._get_with_project(actor, blueprint_id)
        self._assert_customer(actor, project)
        self._assert_latest(blueprint)
        if blueprint.version >= MAX_VERSIONS:
            raise LimitReachedError(
                f"Maximum of {MAX_DESIGN_REVISIONS} design revisions reached",
                code=ErrorCode.MAX_REVISIONS_REACHED,
                details={"version": blueprint.version},
            )
        blueprint_transitions.assert_transition(blueprint.status, BlueprintStatus.REVISION_REQUESTED)

        try:
            blueprint.status = BlueprintStatus.REVISION_REQUESTED
            blueprint.revision_notes = notes
            blueprint.revision_ref_keys = list(reference_keys or [])
            self.db.commit()
            self.db.refresh(blueprint)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.BLUEPRINT_REVISION_REQUESTED,
            actor.id,
            "blueprint",
            blueprint.id,
            {"version": blueprint.version, "notes": notes},
            meta,
        )
        self._notify_engineers(
            project,
            "Design Revision Requested",
            f'The customer requested changes to "{project.title}": {notes}',
        )
        return blueprint
