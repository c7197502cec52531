"""Fabrication repository - append-only production log"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models_project import FabricationUpdate


class FabricationRepository:
    @staticmethod
    def get_latest(db: Session, project_id: int) -> Optional[FabricationUpdate]:
        return (
            db.query(FabricationUpdate)
            .filter(FabricationUpdate.project_id == project_id)
            .order_by(FabricationUpdate.id.desc())
            .first()
        )

    @staticmethod
    def list_for_project(db: Session, project_id: int) -> list[FabricationUpdate]:
        return (
            db.query(FabricationUpdate)
            .filter(FabricationUpdate.project_id == project_id)
            .order_by(FabricationUpdate.id.asc())
            .all()
        )

    @staticmethod
    def create(db: Session, **fields) -> FabricationUpdate:
        update = FabricationUpdate(**fields)
        db.add(update)
        db.flush()
        return update
