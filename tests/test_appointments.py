from datetime import date
from decimal import Decimal

import pytest
from conftest import BOOKING_DAY, SATURDAY, FakeFeeService, actor_for, make_user

from app.domain.appointments.schemas import (
    AgentAppointmentCreate,
    AppointmentConfirm,
    AppointmentRequest,
    RescheduleComplete,
)
from app.domain.appointments.service import AppointmentService
from app.models import AuditLog, Notification
from app.models_appointment import Appointment, SlotHold, VisitReport
from app.shared.access import Role
from app.shared.errors import (
    BadRequestError,
    ConflictError,
    DuplicateEntryError,
    ForbiddenError,
    InvalidTransitionError,
    LimitReachedError,
    NotFoundError,
    SlotLockedError,
    ValidationFailedError,
)
from app.shared.state_machine import AppointmentStatus

NEXT_DAY = date(2030, 1, 8)


def office_request(**overrides) -> AppointmentRequest:
    values = {"type": "office", "date": BOOKING_DAY, "slotCode": "10:00", "purpose": "Gate design"}
    values.update(overrides)
    return AppointmentRequest(**values)


def ocular_request(**overrides) -> AppointmentRequest:
    values = {
        "type": "ocular",
        "date": BOOKING_DAY,
        "slotCode": "10:00",
        "address": "Lot 4, Imus, Cavite",
        "latitude": 14.4297,
        "longitude": 120.9367,
    }
    values.update(overrides)
    return AppointmentRequest(**values)


@pytest.fixture
def confirmed_ocular(appointment_service, customer, agent, sales_staff):
    appointment = appointment_service.request_appointment(actor_for(customer), ocular_request())
    return appointment_service.confirm_appointment(
        actor_for(agent), appointment.id, AppointmentConfirm(salesStaffId=sales_staff.id)
    )


@pytest.mark.appointments
class TestRequestAppointment:
    def test_customer_request_is_recorded(self, db_session, appointment_service, customer):
        """A request starts as requested with no staff and no slot hold."""
        appointment = appointment_service.request_appointment(actor_for(customer), office_request())

        assert appointment.status == AppointmentStatus.REQUESTED
        assert appointment.customer_id == customer.id
        assert appointment.sales_staff_id is None
        assert db_session.query(SlotHold).count() == 0
        audit = db_session.query(AuditLog).filter(AuditLog.action == "appointment.created").one()
        assert audit.target_id == appointment.id
        assert audit.actor_id == customer.id
        note = db_session.query(Notification).one()
        assert note.recipient_role == Role.APPOINTMENT_AGENT

    def test_only_customers_can_request(self, appointment_service, sales_staff):
        with pytest.raises(ForbiddenError):
            appointment_service.request_appointment(actor_for(sales_staff), office_request())

    def test_one_active_appointment_per_customer(self, appointment_service, customer):
        appointment_service.request_appointment(actor_for(customer), office_request())

        with pytest.raises(DuplicateEntryError):
            appointment_service.request_appointment(
                actor_for(customer), office_request(slotCode="11:00")
            )

    def test_cancelled_appointment_frees_the_customer(self, appointment_service, customer):
        first = appointment_service.request_appointment(actor_for(customer), office_request())
        appointment_service.cancel_appointment(actor_for(customer), first.id, "Changed plans")

        second = appointment_service.request_appointment(actor_for(customer), office_request())
        assert second.id != first.id

    def test_weekend_rejected(self, appointment_service, customer):
        with pytest.raises(BadRequestError):
            appointment_service.request_appointment(
                actor_for(customer), office_request(date=SATURDAY)
            )

    def test_ocular_requires_location(self, appointment_service, customer):
        with pytest.raises(ValidationFailedError):
            appointment_service.request_appointment(
                actor_for(customer), ocular_request(latitude=None, longitude=None)
            )

    def test_slot_capacity_enforced(self, db_session, appointment_service):
        """Office slots hold three requests; the fourth is turned away."""
        for i in range(3):
            user = make_user(db_session, f"c{i}@example.com", [Role.CUSTOMER])
            appointment_service.request_appointment(actor_for(user), office_request())
        late = make_user(db_session, "late@example.com", [Role.CUSTOMER])

        with pytest.raises(ConflictError) as exc_info:
            appointment_service.request_appointment(actor_for(late), office_request())

        assert exc_info.value.code == "SLOT_UNAVAILABLE"
        slots = {s["slotCode"]: s for s in appointment_service.get_available_slots(BOOKING_DAY, "office")}
        assert slots["10:00"]["available"] is False
        assert slots["11:00"]["remaining"] == 3

    def test_agent_books_for_customer(self, appointment_service, agent, customer):
        data = AgentAppointmentCreate(
            type="office", date=BOOKING_DAY, slotCode="09:00", customerId=customer.id
        )
        appointment = appointment_service.agent_create_appointment(actor_for(agent), data)

        assert appointment.customer_id == customer.id
        assert appointment.booked_by_id == agent.id

    def test_agent_cannot_book_for_non_customer(self, appointment_service, agent, sales_staff):
        data = AgentAppointmentCreate(
            type="office", date=BOOKING_DAY, slotCode="09:00", customerId=sales_staff.id
        )
        with pytest.raises(NotFoundError):
            appointment_service.agent_create_appointment(actor_for(agent), data)


@pytest.mark.appointments
class TestVisitFee:
    def test_ocular_request_is_quoted(self, appointment_service, customer, fee_service):
        appointment = appointment_service.request_appointment(actor_for(customer), ocular_request())

        assert len(fee_service.calls) == 1
        assert appointment.visit_fee == Decimal("650.00")
        assert appointment.visit_fee_breakdown["distanceKm"] == 15.0
        assert appointment.visit_fee_breakdown["additionalFee"] == 300

    def test_office_request_is_not_quoted(self, appointment_service, customer, fee_service):
        appointment_service.request_appointment(actor_for(customer), office_request())

        assert fee_service.calls == []

    def test_routing_failure_keeps_the_booking(self, db_session, reservations, calendar, customer):
        """The quote is retried later by the refresh job."""
        failing = AppointmentService(
            db_session,
            reservations=reservations,
            calendar=calendar,
            fee_service=FakeFeeService(fail=True),
        )
        appointment = failing.request_appointment(actor_for(customer), ocular_request())
        assert appointment.status == AppointmentStatus.REQUESTED
        assert appointment.visit_fee is None

        working = AppointmentService(
            db_session, reservations=reservations, calendar=calendar, fee_service=FakeFeeService()
        )
        assert working.refresh_missing_visit_fees() == 1
        db_session.refresh(appointment)
        assert appointment.visit_fee == Decimal("650.00")
        assert working.refresh_missing_visit_fees() == 0

    def test_record_visit_fee_once(self, appointment_service, customer, cashier):
        appointment = appointment_service.request_appointment(actor_for(customer), ocular_request())

        paid = appointment_service.record_visit_fee(actor_for(cashier), appointment.id, "gcash")
        assert paid.visit_fee_paid is True
        assert paid.visit_fee_payment_method == "gcash"

        with pytest.raises(ConflictError):
            appointment_service.record_visit_fee(actor_for(cashier), appointment.id, "cash")

    def test_office_visits_have_no_fee(self, appointment_service, customer, cashier):
        appointment = appointment_service.request_appointment(actor_for(customer), office_request())

        with pytest.raises(BadRequestError):
            appointment_service.record_visit_fee(actor_for(cashier), appointment.id, "cash")


@pytest.mark.appointments
class TestConfirmAppointment:
    def test_confirm_ocular_holds_staff_slot(self, db_session, confirmed_ocular, sales_staff, agent):
        """Confirmation binds the staff member and seeds a draft visit report."""
        assert confirmed_ocular.status == AppointmentStatus.CONFIRMED
        assert confirmed_ocular.sales_staff_id == sales_staff.id
        assert confirmed_ocular.confirmed_by_id == agent.id

        hold = db_session.query(SlotHold).one()
        assert hold.confirmed is True
        assert hold.staff_id == sales_staff.id
        assert hold.appointment_id == confirmed_ocular.id

        report = db_session.query(VisitReport).one()
        assert report.status == "draft"
        assert report.visit_type == "ocular"
        assert report.sales_staff_id == sales_staff.id

    def test_reconfirm_keeps_single_visit_report(
        self, db_session, appointment_service, confirmed_ocular, customer, agent, sales_staff
    ):
        """Confirming again after a reschedule request reuses the draft report."""
        appointment_service.request_reschedule(actor_for(customer), confirmed_ocular.id, "Typhoon")

        reconfirmed = appointment_service.confirm_appointment(
            actor_for(agent), confirmed_ocular.id, AppointmentConfirm(salesStaffId=sales_staff.id)
        )

        assert reconfirmed.status == AppointmentStatus.CONFIRMED
        assert db_session.query(VisitReport).count() == 1
        created = db_session.query(AuditLog).filter(AuditLog.action == "visit_report.created")
        assert created.count() == 1
        assert db_session.query(SlotHold).one().confirmed is True

    def test_confirm_office_takes_no_hold(self, db_session, appointment_service, customer, agent, sales_staff):
        appointment = appointment_service.request_appointment(actor_for(customer), office_request())
        confirmed = appointment_service.confirm_appointment(
            actor_for(agent), appointment.id, AppointmentConfirm(salesStaffId=sales_staff.id)
        )

        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert db_session.query(SlotHold).count() == 0
        assert db_session.query(VisitReport).one().visit_type == "consultation"

    def test_double_booking_same_staff_rejected(
        self, db_session, appointment_service, confirmed_ocular, other_customer, agent, sales_staff
    ):
        second = appointment_service.request_appointment(actor_for(other_customer), ocular_request())

        with pytest.raises(SlotLockedError):
            appointment_service.confirm_appointment(
                actor_for(agent), second.id, AppointmentConfirm(salesStaffId=sales_staff.id)
            )

        assert db_session.get(Appointment, second.id).status == AppointmentStatus.REQUESTED
        assert db_session.query(SlotHold).count() == 1

    def test_other_staff_can_take_same_slot(
        self, appointment_service, confirmed_ocular, other_customer, agent, other_sales_staff
    ):
        second = appointment_service.request_appointment(actor_for(other_customer), ocular_request())
        confirmed = appointment_service.confirm_appointment(
            actor_for(agent), second.id, AppointmentConfirm(salesStaffId=other_sales_staff.id)
        )

        assert confirmed.status == AppointmentStatus.CONFIRMED

    def test_unavailable_staff_rejected(self, appointment_service, calendar, customer, agent, sales_staff):
        calendar.set_unavailable_dates(actor_for(sales_staff), sales_staff.id, [BOOKING_DAY])
        appointment = appointment_service.request_appointment(actor_for(customer), ocular_request())

        with pytest.raises(BadRequestError):
            appointment_service.confirm_appointment(
                actor_for(agent), appointment.id, AppointmentConfirm(salesStaffId=sales_staff.id)
            )

    def test_customer_cannot_confirm(self, appointment_service, customer, sales_staff):
        appointment = appointment_service.request_appointment(actor_for(customer), office_request())

        with pytest.raises(ForbiddenError):
            appointment_service.confirm_appointment(
                actor_for(customer), appointment.id, AppointmentConfirm(salesStaffId=sales_staff.id)
            )

    def test_confirming_twice_is_invalid(self, appointment_service, confirmed_ocular, agent, sales_staff):
        with pytest.raises(InvalidTransitionError):
            appointment_service.confirm_appointment(
                actor_for(agent), confirmed_ocular.id, AppointmentConfirm(salesStaffId=sales_staff.id)
            )


@pytest.mark.appointments
class TestClosingTransitions:
    def test_cancel_releases_hold(self, db_session, appointment_service, confirmed_ocular, customer):
        cancelled = appointment_service.cancel_appointment(
            actor_for(customer), confirmed_ocular.id, "Travelling"
        )

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert db_session.query(SlotHold).count() == 0

    def test_customer_cannot_cancel_others(self, appointment_service, confirmed_ocular, other_customer):
        with pytest.raises(ForbiddenError):
            appointment_service.cancel_appointment(actor_for(other_customer), confirmed_ocular.id)

    def test_staff_completes_visit(self, db_session, appointment_service, confirmed_ocular, sales_staff):
        completed = appointment_service.complete_appointment(actor_for(sales_staff), confirmed_ocular.id)

        assert completed.status == AppointmentStatus.COMPLETED
        assert db_session.query(SlotHold).count() == 0

    def test_unassigned_staff_cannot_complete(self, appointment_service, confirmed_ocular, other_sales_staff):
        with pytest.raises(ForbiddenError):
            appointment_service.complete_appointment(actor_for(other_sales_staff), confirmed_ocular.id)

    def test_no_show_requires_confirmation(self, appointment_service, customer, agent):
        appointment = appointment_service.request_appointment(actor_for(customer), office_request())

        with pytest.raises(InvalidTransitionError):
            appointment_service.mark_no_show(actor_for(agent), appointment.id, "Did not arrive")

    def test_terminal_appointment_cannot_be_cancelled(
        self, appointment_service, confirmed_ocular, agent
    ):
        appointment_service.mark_no_show(actor_for(agent), confirmed_ocular.id, "Did not arrive")

        with pytest.raises(InvalidTransitionError):
            appointment_service.cancel_appointment(actor_for(agent), confirmed_ocular.id)


@pytest.mark.appointments
class TestReschedule:
    def test_full_reschedule_moves_the_hold(
        self, db_session, appointment_service, confirmed_ocular, customer, agent, sales_staff
    ):
        """The old slot is freed, the new slot is held, the counter goes up."""
        requested = appointment_service.request_reschedule(
            actor_for(customer), confirmed_ocular.id, "Out of town"
        )
        assert requested.status == AppointmentStatus.RESCHEDULE_REQUESTED
        assert requested.reschedule_reason == "Out of town"

        moved = appointment_service.complete_reschedule(
            actor_for(agent), confirmed_ocular.id, RescheduleComplete(date=NEXT_DAY, slotCode="14:00")
        )

        assert moved.status == AppointmentStatus.CONFIRMED
        assert moved.date == NEXT_DAY
        assert moved.slot_code == "14:00"
        assert moved.reschedule_count == 1
        hold = db_session.query(SlotHold).one()
        assert (hold.date, hold.slot_code, hold.staff_id) == (NEXT_DAY, "14:00", sales_staff.id)

    def test_reschedule_cap(self, db_session, appointment_service, confirmed_ocular, customer, agent):
        appointment = db_session.get(Appointment, confirmed_ocular.id)
        appointment.max_reschedules = 1
        db_session.commit()

        appointment_service.request_reschedule(actor_for(customer), appointment.id, "Rain")
        appointment_service.complete_reschedule(
            actor_for(agent), appointment.id, RescheduleComplete(date=NEXT_DAY, slotCode="09:00")
        )

        with pytest.raises(LimitReachedError) as exc_info:
            appointment_service.request_reschedule(actor_for(customer), appointment.id, "Rain again")
        assert exc_info.value.code == "BOOKING_LIMIT_REACHED"
        assert exc_info.value.details == {"rescheduleCount": 1, "maxReschedules": 1}

    def test_only_owner_can_request(self, appointment_service, confirmed_ocular, other_customer):
        with pytest.raises(ForbiddenError):
            appointment_service.request_reschedule(
                actor_for(other_customer), confirmed_ocular.id, "Not mine"
            )

    def test_requested_appointment_cannot_be_rescheduled(self, appointment_service, customer):
        appointment = appointment_service.request_appointment(actor_for(customer), office_request())

        with pytest.raises(InvalidTransitionError):
            appointment_service.request_reschedule(actor_for(customer), appointment.id, "Too early")

    def test_complete_without_request_rejected(self, appointment_service, confirmed_ocular, agent):
        with pytest.raises(BadRequestError):
            appointment_service.complete_reschedule(
                actor_for(agent), confirmed_ocular.id, RescheduleComplete(date=NEXT_DAY, slotCode="09:00")
            )

    def test_new_slot_taken_keeps_old_hold(
        self, db_session, appointment_service, confirmed_ocular, customer, other_customer, agent, sales_staff
    ):
        """A locked target slot leaves the appointment and its hold untouched."""
        other = appointment_service.request_appointment(
            actor_for(other_customer), ocular_request(date=NEXT_DAY, slotCode="09:00")
        )
        appointment_service.confirm_appointment(
            actor_for(agent), other.id, AppointmentConfirm(salesStaffId=sales_staff.id)
        )
        appointment_service.request_reschedule(actor_for(customer), confirmed_ocular.id, "Conflict")

        with pytest.raises(SlotLockedError):
            appointment_service.complete_reschedule(
                actor_for(agent), confirmed_ocular.id, RescheduleComplete(date=NEXT_DAY, slotCode="09:00")
            )

        appointment = db_session.get(Appointment, confirmed_ocular.id)
        assert appointment.status == AppointmentStatus.RESCHEDULE_REQUESTED
        assert appointment.date == BOOKING_DAY
        assert db_session.query(SlotHold).count() == 2


@pytest.mark.appointments
class TestReads:
    def test_customers_see_only_their_own(self, appointment_service, customer, other_customer):
        mine = appointment_service.request_appointment(actor_for(customer), office_request())
        appointment_service.request_appointment(actor_for(other_customer), office_request(slotCode="11:00"))

        listed = appointment_service.list_appointments(actor_for(customer))
        assert [a.id for a in listed] == [mine.id]

    def test_agents_see_everything(self, appointment_service, customer, other_customer, agent):
        appointment_service.request_appointment(actor_for(customer), office_request())
        appointment_service.request_appointment(actor_for(other_customer), office_request(slotCode="11:00"))

        assert len(appointment_service.list_appointments(actor_for(agent))) == 2

    def test_stranger_cannot_view(self, appointment_service, customer, other_customer):
        appointment = appointment_service.request_appointment(actor_for(customer), office_request())

        with pytest.raises(ForbiddenError):
            appointment_service.get_appointment(actor_for(other_customer), appointment.id)

    def test_missing_appointment(self, appointment_service, agent):
        with pytest.raises(NotFoundError):
            appointment_service.get_appointment(actor_for(agent), 999)
