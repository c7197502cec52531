"""Appointment service - booking lifecycle, slot holds and visit fees

Every state-changing operation runs as one transaction: the slot hold writes
and the appointment change are committed together or rolled back together.
Audit records, notifications, visit-report creation and fee quoting happen
after the commit and never undo it.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...config import OFFICE_SLOT_CAPACITY, ONSITE_SLOT_CAPACITY, SLOT_CODES
from ...models_appointment import Appointment, AppointmentType
from ...services.audit_service import AuditAction, AuditService, RequestMeta
from ...services.notification_service import (
    NotificationCategory,
    NotificationService,
    format_slot_time,
)
from ...services.route_fee_service import LatLng, RouteFeeService
from ...services.workflow import WorkflowChain, release_visit_hold
from ...shared.access import Actor, Role, require_role
from ...shared.errors import (
    BadRequestError,
    ConflictError,
    DuplicateEntryError,
    ErrorCode,
    ForbiddenError,
    LimitReachedError,
    NotFoundError,
    ValidationFailedError,
)
from ...shared.state_machine import AppointmentStatus, appointment_transitions
from ..calendar.service import CalendarService
from ..reservations.service import ReservationManager
from ..users.repository import UserRepository
from .repository import AppointmentRepository
from .schemas import (
    AgentAppointmentCreate,
    AppointmentConfirm,
    AppointmentRequest,
    RescheduleComplete,
)

logger = logging.getLogger(__name__)


class AppointmentService:
    """Service layer for the appointment lifecycle"""

    def __init__(
        self,
        db: Session,
        reservations: Optional[ReservationManager] = None,
        calendar: Optional[CalendarService] = None,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditService] = None,
        fee_service: Optional[RouteFeeService] = None,
    ):
        self.db = db
        self.repo = AppointmentRepository()
        self.reservations = reservations or ReservationManager(db)
        self.calendar = calendar or CalendarService(db)
        self.notifications = notifications or NotificationService(db)
        self.audit = audit or AuditService(db)
        self.fee_service = fee_service
        self.workflow = WorkflowChain(db, self.audit, self.notifications, self.reservations)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _get_or_404(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found", details={"appointmentId": appointment_id})
        return appointment

    def _assert_capacity(self, day: date, slot_code: str, appointment_type: str) -> None:
        capacity = OFFICE_SLOT_CAPACITY if appointment_type == AppointmentType.OFFICE else ONSITE_SLOT_CAPACITY
        if self.repo.count_booked(self.db, day, slot_code, appointment_type) >= capacity:
            raise ConflictError(
                f"The {format_slot_time(slot_code)} slot on {day.isoformat()} is fully booked",
                code=ErrorCode.SLOT_UNAVAILABLE,
            )

    def _get_sales_staff(self, staff_id: int, day: date):
        staff = UserRepository.get_active_with_role(self.db, staff_id, Role.SALES_STAFF)
        if not staff:
            raise NotFoundError("Sales staff not found", details={"staffId": staff_id})
        self.calendar.assert_staff_available(staff.id, day)
        return staff

    def _transition(self, appointment: Appointment, to_status: str) -> None:
        appointment_transitions.assert_transition(appointment.status, to_status)
        logger.info(f"🔄 Appointment {appointment.id}: {appointment.status} → {to_status}")
        appointment.status = to_status

    def _notify_customer(self, appointment: Appointment, title: str, message: str) -> None:
        self.notifications.notify(
            NotificationCategory.APPOINTMENT,
            title,
            message,
            f"/appointments/{appointment.id}",
            recipient_id=appointment.customer_id,
        )

    def _assert_can_view(self, actor: Actor, appointment: Appointment) -> None:
        if actor.is_admin or actor.has_role(Role.APPOINTMENT_AGENT, Role.CASHIER):
            return
        if actor.has_role(Role.CUSTOMER) and appointment.customer_id == actor.id:
            return
        if actor.has_role(Role.SALES_STAFF) and appointment.sales_staff_id == actor.id:
            return
        raise ForbiddenError("You do not have access to this appointment")

    # ========================================================================
    # AVAILABILITY
    # ========================================================================

    def get_available_slots(self, day: date, appointment_type: str) -> list[dict]:
        if appointment_type not in AppointmentType.ALL:
            raise ValidationFailedError("type must be 'office' or 'ocular'")
        self.calendar.assert_date_bookable(day)

        capacity = OFFICE_SLOT_CAPACITY if appointment_type == AppointmentType.OFFICE else ONSITE_SLOT_CAPACITY
        slots = []
        for slot_code in SLOT_CODES:
            booked = self.repo.count_booked(self.db, day, slot_code, appointment_type)
            remaining = max(0, capacity - booked)
            slots.append(
                {
                    "slotCode": slot_code,
                    "time": format_slot_time(slot_code),
                    "available": remaining > 0,
                    "remaining": remaining,
                }
            )
        return slots

    # ========================================================================
    # BOOKING
    # ========================================================================

    def request_appointment(
        self, actor: Actor, data: AppointmentRequest, meta: Optional[RequestMeta] = None
    ) -> Appointment:
        """Customer books for themselves. No staff and no hold yet."""
        require_role(actor, Role.CUSTOMER)
        return self._create(actor, actor.id, data, meta)

    def agent_create_appointment(
        self, actor: Actor, data: AgentAppointmentCreate, meta: Optional[RequestMeta] = None
    ) -> Appointment:
        require_role(actor, Role.APPOINTMENT_AGENT)
        customer = UserRepository.get_active_with_role(self.db, data.customerId, Role.CUSTOMER)
        if not customer:
            raise NotFoundError("Customer not found", details={"customerId": data.customerId})
        return self._create(actor, customer.id, data, meta)

    def _create(
        self,
        actor: Actor,
        customer_id: int,
        data: AppointmentRequest,
        meta: Optional[RequestMeta],
    ) -> Appointment:
        existing = self.repo.find_active_for_customer(self.db, customer_id)
        if existing:
            raise DuplicateEntryError(
                "Customer already has an active appointment",
                details={"appointmentId": existing.id, "status": existing.status},
            )

        self.calendar.assert_date_bookable(data.date)
        if data.type == AppointmentType.OCULAR and (data.latitude is None or data.longitude is None):
            raise ValidationFailedError("On-site visits require a pinned location")
        self._assert_capacity(data.date, data.slotCode, data.type)

        try:
            appointment = self.repo.create(
                self.db,
                customer_id=customer_id,
                booked_by_id=actor.id,
                type=data.type,
                date=data.date,
                slot_code=data.slotCode,
                status=AppointmentStatus.REQUESTED,
                customer_address=data.address,
                latitude=data.latitude,
                longitude=data.longitude,
                customer_notes=data.purpose,
            )
            self.db.commit()
            self.db.refresh(appointment)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"📅 Appointment {appointment.id} requested for {data.date} {data.slotCode} ({data.type})"
        )
        self.audit.record(
            AuditAction.APPOINTMENT_CREATED,
            actor.id,
            "appointment",
            appointment.id,
            {"type": data.type, "date": data.date.isoformat(), "slotCode": data.slotCode},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.APPOINTMENT,
            "New Appointment Request",
            f"New {data.type} appointment requested for {data.date.isoformat()} "
            f"at {format_slot_time(data.slotCode)}.",
            f"/appointments/{appointment.id}",
            role=Role.APPOINTMENT_AGENT,
        )

        if appointment.type == AppointmentType.OCULAR:
            self._stamp_visit_fee(appointment)
        return appointment

    # ========================================================================
    # CONFIRMATION
    # ========================================================================

    def confirm_appointment(
        self,
        actor: Actor,
        appointment_id: int,
        data: AppointmentConfirm,
        meta: Optional[RequestMeta] = None,
    ) -> Appointment:
        require_role(actor, Role.APPOINTMENT_AGENT)
        appointment = self._get_or_404(appointment_id)
        appointment_transitions.assert_transition(appointment.status, AppointmentStatus.CONFIRMED)
        staff = self._get_sales_staff(data.salesStaffId, appointment.date)

        try:
            if appointment.type == AppointmentType.OCULAR:
                release_visit_hold(self.reservations, appointment)
                self.reservations.hold_and_confirm(
                    appointment.date, appointment.slot_code, staff.id, actor.id, appointment.id
                )
            appointment.sales_staff_id = staff.id
            appointment.confirmed_by_id = actor.id
            if data.internalNotes is not None:
                appointment.internal_notes = data.internalNotes
            self._transition(appointment, AppointmentStatus.CONFIRMED)
            self.db.commit()
            self.db.refresh(appointment)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Appointment {appointment.id} confirmed with sales staff {staff.id}")
        self.audit.record(
            AuditAction.APPOINTMENT_CONFIRMED,
            actor.id,
            "appointment",
            appointment.id,
            {"salesStaffId": staff.id},
            meta,
        )
        self.workflow.after_appointment_confirmed(appointment)

        when = f"{appointment.date.isoformat()} at {format_slot_time(appointment.slot_code)}"
        self._notify_customer(
            appointment, "Appointment Confirmed", f"Your appointment on {when} has been confirmed."
        )
        self.notifications.notify(
            NotificationCategory.APPOINTMENT,
            "New Visit Assigned",
            f"You have been assigned a {appointment.type} appointment on {when}.",
            f"/appointments/{appointment.id}",
            recipient_id=staff.id,
        )
        return appointment

    # ========================================================================
    # CLOSING TRANSITIONS
    # ========================================================================

    def _close(
        self,
        actor: Actor,
        appointment: Appointment,
        to_status: str,
        action: str,
        details: dict,
        meta: Optional[RequestMeta],
    ) -> Appointment:
        appointment_transitions.assert_transition(appointment.status, to_status)
        try:
            release_visit_hold(self.reservations, appointment)
            self._transition(appointment, to_status)
            self.db.commit()
            self.db.refresh(appointment)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(action, actor.id, "appointment", appointment.id, details, meta)
        return appointment

    def _assert_staff_or_agent(self, actor: Actor, appointment: Appointment) -> None:
        if actor.is_admin or actor.has_role(Role.APPOINTMENT_AGENT):
            return
        if actor.has_role(Role.SALES_STAFF) and appointment.sales_staff_id == actor.id:
            return
        raise ForbiddenError("Only the assigned sales staff or an appointment agent can do this")

    def complete_appointment(
        self, actor: Actor, appointment_id: int, meta: Optional[RequestMeta] = None
    ) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        self._assert_staff_or_agent(actor, appointment)
        appointment = self._close(
            actor,
            appointment,
            AppointmentStatus.COMPLETED,
            AuditAction.APPOINTMENT_COMPLETED,
            {"triggeredBy": "user"},
            meta,
        )
        self._notify_customer(
            appointment, "Appointment Completed", "Your appointment has been marked as completed."
        )
        return appointment

    def mark_no_show(
        self,
        actor: Actor,
        appointment_id: int,
        internal_notes: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        self._assert_staff_or_agent(actor, appointment)
        appointment_transitions.assert_transition(appointment.status, AppointmentStatus.NO_SHOW)
        if internal_notes:
            appointment.internal_notes = internal_notes
        return self._close(
            actor,
            appointment,
            AppointmentStatus.NO_SHOW,
            AuditAction.APPOINTMENT_NO_SHOW,
            {},
            meta,
        )

    def cancel_appointment(
        self,
        actor: Actor,
        appointment_id: int,
        reason: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        if not (actor.is_admin or actor.has_role(Role.APPOINTMENT_AGENT)):
            if not (actor.has_role(Role.CUSTOMER) and appointment.customer_id == actor.id):
                raise ForbiddenError("You can only cancel your own appointments")

        appointment = self._close(
            actor,
            appointment,
            AppointmentStatus.CANCELLED,
            AuditAction.APPOINTMENT_CANCELLED,
            {"reason": reason},
            meta,
        )
        if actor.id == appointment.customer_id:
            self.notifications.notify(
                NotificationCategory.APPOINTMENT,
                "Appointment Cancelled",
                f"Appointment on {appointment.date.isoformat()} was cancelled by the customer.",
                f"/appointments/{appointment.id}",
                role=Role.APPOINTMENT_AGENT,
            )
        else:
            self._notify_customer(
                appointment,
                "Appointment Cancelled",
                f"Your appointment has been cancelled.{' Reason: ' + reason if reason else ''}",
            )
        return appointment

    # ========================================================================
    # RESCHEDULING
    # ========================================================================

    def request_reschedule(
        self,
        actor: Actor,
        appointment_id: int,
        reason: str,
        meta: Optional[RequestMeta] = None,
    ) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        if appointment.customer_id != actor.id:
            raise ForbiddenError("You can only reschedule your own appointments")
        if appointment.reschedule_count >= appointment.max_reschedules:
            raise LimitReachedError(
                f"Maximum number of reschedules ({appointment.max_reschedules}) reached",
                code=ErrorCode.BOOKING_LIMIT_REACHED,
                details={
                    "rescheduleCount": appointment.reschedule_count,
                    "maxReschedules": appointment.max_reschedules,
                },
            )

        try:
            self._transition(appointment, AppointmentStatus.RESCHEDULE_REQUESTED)
            appointment.reschedule_reason = reason
            self.db.commit()
            self.db.refresh(appointment)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.APPOINTMENT_RESCHEDULE_REQUESTED,
            actor.id,
            "appointment",
            appointment.id,
            {"reason": reason},
            meta,
        )
        self.notifications.notify(
            NotificationCategory.APPOINTMENT,
            "Reschedule Requested",
            f"A customer requested to reschedule their appointment: {reason}",
            f"/appointments/{appointment.id}",
            role=Role.APPOINTMENT_AGENT,
        )
        return appointment

    def complete_reschedule(
        self,
        actor: Actor,
        appointment_id: int,
        data: RescheduleComplete,
        meta: Optional[RequestMeta] = None,
    ) -> Appointment:
        require_role(actor, Role.APPOINTMENT_AGENT)
        appointment = self._get_or_404(appointment_id)
        if appointment.status != AppointmentStatus.RESCHEDULE_REQUESTED:
            raise BadRequestError(
                "Appointment has no pending reschedule request",
                details={"status": appointment.status},
            )
        appointment_transitions.assert_transition(appointment.status, AppointmentStatus.CONFIRMED)

        self.calendar.assert_date_bookable(data.date)
        staff_id = data.salesStaffId or appointment.sales_staff_id
        if staff_id is None:
            raise ValidationFailedError("A sales staff member must be assigned")
        staff = self._get_sales_staff(staff_id, data.date)
        self._assert_capacity(data.date, data.slotCode, appointment.type)

        previous = {"date": appointment.date.isoformat(), "slotCode": appointment.slot_code}
        try:
            if appointment.type == AppointmentType.OCULAR:
                release_visit_hold(self.reservations, appointment)
                self.reservations.hold_and_confirm(
                    data.date, data.slotCode, staff.id, actor.id, appointment.id
                )
            appointment.date = data.date
            appointment.slot_code = data.slotCode
            appointment.sales_staff_id = staff.id
            appointment.reschedule_count += 1
            self._transition(appointment, AppointmentStatus.CONFIRMED)
            self.db.commit()
            self.db.refresh(appointment)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"📅 Appointment {appointment.id} rescheduled to {data.date} {data.slotCode} "
            f"({appointment.reschedule_count}/{appointment.max_reschedules})"
        )
        self.audit.record(
            AuditAction.APPOINTMENT_RESCHEDULED,
            actor.id,
            "appointment",
            appointment.id,
            {
                "from": previous,
                "to": {"date": data.date.isoformat(), "slotCode": data.slotCode},
                "salesStaffId": staff.id,
                "rescheduleCount": appointment.reschedule_count,
            },
            meta,
        )
        self._notify_customer(
            appointment,
            "Appointment Rescheduled",
            f"Your appointment has been moved to {data.date.isoformat()} "
            f"at {format_slot_time(data.slotCode)}.",
        )
        return appointment

    # ========================================================================
    # VISIT FEE
    # ========================================================================

    def _stamp_visit_fee(self, appointment: Appointment) -> Optional[dict]:
        """Best-effort: a routing failure leaves the appointment without a fee."""
        if appointment.latitude is None or appointment.longitude is None:
            return None

        try:
            fee_service = self.fee_service or RouteFeeService()
            result = fee_service.compute_distance_and_fee(
                fee_service.origin, LatLng(appointment.latitude, appointment.longitude)
            )
            appointment.visit_fee = Decimal(str(result["fee"]["total"]))
            appointment.visit_fee_breakdown = {
                **result["fee"],
                "distanceKm": result["distanceKm"],
                "etaMinutes": result["etaMinutes"],
            }
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"⚠️ Visit fee quote failed for appointment {appointment.id}: {e}")
            return None

        logger.info(f"💰 Visit fee {appointment.visit_fee} stamped on appointment {appointment.id}")
        return appointment.visit_fee_breakdown

    def quote_visit_fee(self, actor: Actor, appointment_id: int) -> Appointment:
        require_role(actor, Role.APPOINTMENT_AGENT, Role.CASHIER)
        appointment = self._get_or_404(appointment_id)
        if appointment.type != AppointmentType.OCULAR:
            raise BadRequestError("Visit fees apply to on-site visits only")
        self._stamp_visit_fee(appointment)
        return appointment

    def refresh_missing_visit_fees(self, limit: int = 50) -> int:
        """Retry fee quotes that failed at booking time; returns how many succeeded."""
        stamped = 0
        for appointment in self.repo.list_missing_visit_fee(self.db, limit):
            if self._stamp_visit_fee(appointment) is not None:
                stamped += 1
        return stamped

    def record_visit_fee(
        self,
        actor: Actor,
        appointment_id: int,
        payment_method: str,
        meta: Optional[RequestMeta] = None,
    ) -> Appointment:
        require_role(actor, Role.CASHIER, Role.APPOINTMENT_AGENT)
        appointment = self._get_or_404(appointment_id)
        if appointment.type != AppointmentType.OCULAR:
            raise BadRequestError("Visit fees apply to on-site visits only")
        if appointment.visit_fee_paid:
            raise ConflictError("Visit fee has already been recorded")

        try:
            appointment.visit_fee_paid = True
            appointment.visit_fee_payment_method = payment_method
            self.db.commit()
            self.db.refresh(appointment)
        except Exception:
            self.db.rollback()
            raise

        self.audit.record(
            AuditAction.APPOINTMENT_FEE_RECORDED,
            actor.id,
            "appointment",
            appointment.id,
            {"paymentMethod": payment_method, "amount": str(appointment.visit_fee or 0)},
            meta,
        )
        return appointment

    # ========================================================================
    # READS
    # ========================================================================

    def get_appointment(self, actor: Actor, appointment_id: int) -> Appointment:
        appointment = self._get_or_404(appointment_id)
        self._assert_can_view(actor, appointment)
        return appointment

    def list_appointments(
        self,
        actor: Actor,
        status: Optional[str] = None,
        appointment_type: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Appointment]:
        filters = {}
        if not (actor.is_admin or actor.has_role(Role.APPOINTMENT_AGENT, Role.CASHIER)):
            if actor.has_role(Role.SALES_STAFF):
                filters["sales_staff_id"] = actor.id
            else:
                filters["customer_id"] = actor.id
        return self.repo.list_filtered(
            self.db,
            status=status,
            appointment_type=appointment_type,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
            **filters,
        )
