"""Project repository

Soft-deleted projects are invisible to every read here: each query goes
through ``_live`` which applies ``deleted_at IS NULL``.
"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from ...models_project import Project
from ...shared.dates import utcnow


class ProjectRepository:
    @staticmethod
    def _live(db: Session) -> Query:
        return db.query(Project).filter(Project.deleted_at.is_(None))

    @staticmethod
    def get(db: Session, project_id: int) -> Optional[Project]:
        return ProjectRepository._live(db).filter(Project.id == project_id).first()

    @staticmethod
    def get_for_update(db: Session, project_id: int) -> Optional[Project]:
        return (
            ProjectRepository._live(db)
            .filter(Project.id == project_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def get_by_appointment(db: Session, appointment_id: int) -> Optional[Project]:
        """Includes soft-deleted rows: the appointment link stays unique regardless."""
        return db.query(Project).filter(Project.appointment_id == appointment_id).first()

    @staticmethod
    def create(db: Session, **fields) -> Project:
        project = Project(**fields)
        db.add(project)
        db.flush()
        return project

    @staticmethod
    def soft_delete(db: Session, project: Project) -> Project:
        project.deleted_at = utcnow()
        db.flush()
        return project

    @staticmethod
    def list_filtered(
        db: Session,
        *,
        customer_id: Optional[int] = None,
        sales_staff_id: Optional[int] = None,
        status: Optional[str] = None,
        active_only: bool = False,
        search: Optional[str] = None,
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> list[Project]:
        query = ProjectRepository._live(db)
        if customer_id is not None:
            query = query.filter(Project.customer_id == customer_id)
        if sales_staff_id is not None:
            query = query.filter(Project.sales_staff_id == sales_staff_id)
        if status:
            query = query.filter(Project.status == status)
        if active_only:
            query = query.filter(Project.status.notin_(["completed", "cancelled"]))
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Project.title.ilike(pattern),
                    Project.service_type.ilike(pattern),
                    Project.description.ilike(pattern),
                )
            )
        query = query.order_by(Project.id.desc())
        if limit is not None:
            query = query.offset(offset).limit(limit)
        return query.all()
