"""Blueprint repository - design package versions"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models_project import Blueprint


class BlueprintRepository:
    @staticmethod
    def get(db: Session, blueprint_id: int) -> Optional[Blueprint]:
        return db.query(Blueprint).filter(Blueprint.id == blueprint_id).first()

    @staticmethod
    def get_latest(db: Session, project_id: int) -> Optional[Blueprint]:
        return (
            db.query(Blueprint)
            .filter(Blueprint.project_id == project_id)
            .order_by(Blueprint.version.desc())
            .first()
        )

    @staticmethod
    def list_for_project(db: Session, project_id: int) -> list[Blueprint]:
        return (
            db.query(Blueprint)
            .filter(Blueprint.project_id == project_id)
            .order_by(Blueprint.version.asc())
            .all()
        )

    @staticmethod
    def create(db: Session, **fields) -> Blueprint:
        blueprint = Blueprint(**fields)
        db.add(blueprint)
        db.flush()
        return blueprint
