"""
Audit sink: one immutable AuditLog row per state-changing operation.
Writes happen after the triggering change is committed and never raise.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    APPOINTMENT_CREATED = "appointment.created"
    APPOINTMENT_CONFIRMED = "appointment.confirmed"
    APPOINTMENT_COMPLETED = "appointment.completed"
    APPOINTMENT_NO_SHOW = "appointment.no_show"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_RESCHEDULE_REQUESTED = "appointment.reschedule_requested"
    APPOINTMENT_RESCHEDULED = "appointment.rescheduled"
    APPOINTMENT_FEE_RECORDED = "appointment.visit_fee_recorded"
    VISIT_REPORT_CREATED = "visit_report.created"
    VISIT_REPORT_UPDATED = "visit_report.updated"
    VISIT_REPORT_SUBMITTED = "visit_report.submitted"
    VISIT_REPORT_RETURNED = "visit_report.returned"
    VISIT_REPORT_COMPLETED = "visit_report.completed"
    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_REASSIGNED = "project.reassigned"
    PROJECT_CANCELLED = "project.cancelled"
    PROJECT_COMPLETED = "project.completed"
    PROJECT_DELETED = "project.deleted"
    FABRICATION_ASSIGNED = "fabrication.assigned"
    FABRICATION_UPDATED = "fabrication.updated"
    BLUEPRINT_UPLOADED = "blueprint.uploaded"
    BLUEPRINT_REVISION_UPLOADED = "blueprint.revision_uploaded"
    BLUEPRINT_APPROVED = "blueprint.approved"
    BLUEPRINT_REVISION_REQUESTED = "blueprint.revision_requested"
    PAYMENT_PLAN_CREATED = "payment_plan.created"
    PAYMENT_PLAN_UPDATED = "payment_plan.updated"
    PAYMENT_PROOF_SUBMITTED = "payment.proof_submitted"
    PAYMENT_VERIFIED = "payment.verified"
    PAYMENT_DECLINED = "payment.declined"


@dataclass(frozen=True)
class RequestMeta:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request) -> "RequestMeta":
        client = getattr(request, "client", None)
        return cls(
            ip_address=client.host if client else None,
            user_agent=request.headers.get("user-agent"),
        )


class AuditService:
    """Write-only audit sink bound to a session"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: str,
        actor_id: Optional[int],
        target_type: str,
        target_id: Optional[int],
        details: Optional[dict[str, Any]] = None,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        meta = meta or RequestMeta()
        try:
            self.db.add(
                AuditLog(
                    action=action,
                    actor_id=actor_id,
                    target_type=target_type,
                    target_id=target_id,
                    details=details or {},
                    ip_address=meta.ip_address,
                    user_agent=meta.user_agent,
                )
            )
            self.db.commit()
            logger.debug(f"📝 Audit {action} on {target_type}:{target_id} by {actor_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to write audit record {action} for {target_type}:{target_id}: {e}")
