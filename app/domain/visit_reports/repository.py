"""Visit report repository"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models_appointment import VisitReport


class VisitReportRepository:
    @staticmethod
    def get(db: Session, report_id: int) -> Optional[VisitReport]:
        return db.query(VisitReport).filter(VisitReport.id == report_id).first()

    @staticmethod
    def get_by_appointment(db: Session, appointment_id: int) -> Optional[VisitReport]:
        return db.query(VisitReport).filter(VisitReport.appointment_id == appointment_id).first()

    @staticmethod
    def create(db: Session, **fields) -> VisitReport:
        report = VisitReport(**fields)
        db.add(report)
        db.flush()
        return report

    @staticmethod
    def list_filtered(
        db: Session,
        *,
        sales_staff_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[VisitReport]:
        query = db.query(VisitReport)
        if sales_staff_id is not None:
            query = query.filter(VisitReport.sales_staff_id == sales_staff_id)
        if status:
            query = query.filter(VisitReport.status == status)
        return query.order_by(VisitReport.id.desc()).offset(offset).limit(limit).all()
