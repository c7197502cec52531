import pytest
from conftest import BOOKING_DAY, actor_for

from app.domain.appointments.schemas import AppointmentConfirm, AppointmentRequest
from app.domain.visit_reports.schemas import VisitReportUpdate
from app.domain.visit_reports.service import VisitReportService
from app.models import AuditLog
from app.models_appointment import Appointment, SlotHold
from app.models_project import Project
from app.shared.errors import BadRequestError, ForbiddenError, InvalidTransitionError
from app.shared.state_machine import AppointmentStatus, ProjectStatus, VisitReportStatus


@pytest.fixture
def report_service(db_session):
    return VisitReportService(db_session)


@pytest.fixture
def draft_report(db_session, appointment_service, customer, agent, sales_staff):
    appointment = appointment_service.request_appointment(
        actor_for(customer),
        AppointmentRequest(
            type="ocular",
            date=BOOKING_DAY,
            slotCode="13:00",
            address="88 Rizal Ave, Antipolo",
            latitude=14.5860,
            longitude=121.1761,
            purpose="Balcony railing",
        ),
    )
    appointment_service.confirm_appointment(
        actor_for(agent), appointment.id, AppointmentConfirm(salesStaffId=sales_staff.id)
    )
    return VisitReportService(db_session).get_by_appointment(actor_for(sales_staff), appointment.id)


FINDINGS = VisitReportUpdate(
    measurements={"lengthM": 6.2, "heightM": 1.1},
    materials="Stainless steel 304",
    finishes="Brushed",
    preferredDesign="Horizontal bar railing",
    customerRequirements="Child-safe spacing",
    mediaKeys=["visit-media/3/site.jpg"],
)


@pytest.mark.visit_reports
class TestEditing:
    def test_assigned_staff_updates_findings(self, report_service, draft_report, sales_staff):
        report = report_service.update_report(actor_for(sales_staff), draft_report.id, FINDINGS)

        assert report.materials == "Stainless steel 304"
        assert report.measurements == {"lengthM": 6.2, "heightM": 1.1}
        assert report.media_keys == ["visit-media/3/site.jpg"]

    def test_partial_update_keeps_other_fields(self, report_service, draft_report, sales_staff):
        report_service.update_report(actor_for(sales_staff), draft_report.id, FINDINGS)
        report = report_service.update_report(
            actor_for(sales_staff), draft_report.id, VisitReportUpdate(notes="Bring sample")
        )

        assert report.notes == "Bring sample"
        assert report.finishes == "Brushed"

    def test_other_staff_cannot_edit(self, report_service, draft_report, other_sales_staff):
        with pytest.raises(ForbiddenError):
            report_service.update_report(actor_for(other_sales_staff), draft_report.id, FINDINGS)

    def test_submitted_report_is_read_only(self, report_service, draft_report, sales_staff):
        report_service.submit_report(actor_for(sales_staff), draft_report.id)

        with pytest.raises(BadRequestError):
            report_service.update_report(actor_for(sales_staff), draft_report.id, FINDINGS)


@pytest.mark.visit_reports
class TestSubmission:
    def test_submit_completes_visit_and_creates_project(
        self, db_session, report_service, draft_report, sales_staff, customer
    ):
        """Submission completes the appointment and seeds a submitted project."""
        report_service.update_report(actor_for(sales_staff), draft_report.id, FINDINGS)
        report = report_service.submit_report(actor_for(sales_staff), draft_report.id)

        assert report.status == VisitReportStatus.SUBMITTED
        appointment = db_session.get(Appointment, report.appointment_id)
        assert appointment.status == AppointmentStatus.COMPLETED
        assert db_session.query(SlotHold).count() == 0

        project = db_session.query(Project).one()
        assert project.status == ProjectStatus.SUBMITTED
        assert project.customer_id == customer.id
        assert project.sales_staff_id == sales_staff.id
        assert project.service_type == "Horizontal bar railing"
        assert project.material_type == "Stainless steel 304"
        assert project.media_keys == ["visit-media/3/site.jpg"]

        system_completion = (
            db_session.query(AuditLog).filter(AuditLog.action == "appointment.completed").one()
        )
        assert system_completion.details["triggeredBy"] == "system"

    def test_replayed_submit_creates_no_duplicate(self, db_session, report_service, draft_report, sales_staff):
        report_service.submit_report(actor_for(sales_staff), draft_report.id)
        report_service.submit_report(actor_for(sales_staff), draft_report.id)

        assert db_session.query(Project).count() == 1
        assert db_session.query(AuditLog).filter(AuditLog.action == "project.created").count() == 1

    def test_only_assigned_staff_submits(self, report_service, draft_report, other_sales_staff):
        with pytest.raises(ForbiddenError):
            report_service.submit_report(actor_for(other_sales_staff), draft_report.id)


@pytest.mark.visit_reports
class TestReview:
    def test_return_and_resubmit(self, db_session, report_service, draft_report, sales_staff, engineer):
        report_service.submit_report(actor_for(sales_staff), draft_report.id)

        returned = report_service.return_report(actor_for(engineer), draft_report.id, "Missing height")
        assert returned.status == VisitReportStatus.RETURNED
        assert returned.return_reason == "Missing height"

        report_service.update_report(
            actor_for(sales_staff), draft_report.id, VisitReportUpdate(notes="Height is 1.1 m")
        )
        resubmitted = report_service.submit_report(actor_for(sales_staff), draft_report.id)

        assert resubmitted.status == VisitReportStatus.SUBMITTED
        assert resubmitted.return_reason is None
        assert db_session.query(Project).count() == 1

    def test_engineer_marks_completed(self, report_service, draft_report, sales_staff, engineer):
        report_service.submit_report(actor_for(sales_staff), draft_report.id)

        completed = report_service.mark_completed(actor_for(engineer), draft_report.id)

        assert completed.status == VisitReportStatus.COMPLETED

    def test_draft_cannot_be_returned(self, report_service, draft_report, engineer):
        with pytest.raises(InvalidTransitionError):
            report_service.return_report(actor_for(engineer), draft_report.id, "Too soon")

    def test_sales_staff_cannot_review(self, report_service, draft_report, sales_staff):
        report_service.submit_report(actor_for(sales_staff), draft_report.id)

        with pytest.raises(ForbiddenError):
            report_service.mark_completed(actor_for(sales_staff), draft_report.id)

    def test_list_scoped_to_own_reports(self, report_service, draft_report, sales_staff, other_sales_staff, engineer):
        assert [r.id for r in report_service.list_reports(actor_for(sales_staff))] == [draft_report.id]
        assert report_service.list_reports(actor_for(other_sales_staff)) == []
        assert len(report_service.list_reports(actor_for(engineer))) == 1
