import pytest
from conftest import actor_for, make_appointment, make_project, make_user

from app.domain.projects.schemas import ProjectCreate, ProjectUpdate
from app.domain.projects.service import ProjectService
from app.models import Notification
from app.shared.access import Actor, Role, can_access_project
from app.shared.errors import (
    BadRequestError,
    DuplicateEntryError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
from app.shared.state_machine import AppointmentStatus, ProjectStatus


@pytest.fixture
def project_service(db_session):
    return ProjectService(db_session)


@pytest.fixture
def project(db_session, customer, sales_staff):
    return make_project(db_session, customer, sales_staff_id=sales_staff.id)


@pytest.mark.projects
class TestAccessPredicate:
    def test_related_actors_pass(self, project, customer, sales_staff):
        project.engineer_ids = [50]
        project.fabrication_lead_id = 60
        project.fabrication_assistant_ids = [61]

        assert can_access_project(actor_for(customer), project)
        assert can_access_project(actor_for(sales_staff), project)
        assert can_access_project(Actor.of(50, [Role.ENGINEER]), project)
        assert can_access_project(Actor.of(60, [Role.FABRICATION_STAFF]), project)
        assert can_access_project(Actor.of(61, [Role.FABRICATION_STAFF]), project)
        assert can_access_project(Actor.of(99, [Role.ADMIN]), project)

    def test_unrelated_actors_fail(self, project):
        assert not can_access_project(Actor.of(50, [Role.ENGINEER]), project)
        assert not can_access_project(Actor.of(project.customer_id, [Role.ENGINEER]), project)
        assert not can_access_project(Actor.of(77, [Role.CASHIER]), project)
        assert can_access_project(Actor.of(77, [Role.CASHIER]), project, extra_roles=(Role.CASHIER,))


@pytest.mark.projects
class TestEngineerAssignment:
    def test_assignment_moves_project_to_blueprint(self, db_session, project_service, project, admin, engineer):
        """A submitted project enters the blueprint phase once engineers are assigned."""
        updated = project_service.assign_engineers(actor_for(admin), project.id, [engineer.id])

        assert updated.engineer_ids == [engineer.id]
        assert updated.status == ProjectStatus.BLUEPRINT
        note = db_session.query(Notification).filter(Notification.recipient_id == engineer.id).one()
        assert note.title == "Project Assigned"

    def test_reassignment_keeps_status(self, db_session, project_service, project, admin, engineer):
        other = make_user(db_session, "eng2@example.com", [Role.ENGINEER])
        project_service.assign_engineers(actor_for(admin), project.id, [engineer.id])

        updated = project_service.assign_engineers(actor_for(admin), project.id, [other.id])

        assert updated.engineer_ids == [other.id]
        assert updated.status == ProjectStatus.BLUEPRINT

    def test_non_engineer_rejected(self, project_service, project, admin, sales_staff):
        with pytest.raises(NotFoundError) as exc_info:
            project_service.assign_engineers(actor_for(admin), project.id, [sales_staff.id])
        assert exc_info.value.details == {"engineerIds": [sales_staff.id]}

    def test_only_admin_assigns(self, project_service, project, engineer):
        with pytest.raises(ForbiddenError):
            project_service.assign_engineers(actor_for(engineer), project.id, [engineer.id])


@pytest.mark.projects
class TestFabricationAssignment:
    def test_engineer_assigns_team(self, db_session, project_service, project, engineer, fabricator):
        helper = make_user(db_session, "helper@example.com", [Role.FABRICATION_STAFF])

        updated = project_service.assign_fabrication_staff(
            actor_for(engineer), project.id, fabricator.id, [helper.id, fabricator.id, helper.id]
        )

        assert updated.fabrication_lead_id == fabricator.id
        assert updated.fabrication_assistant_ids == [helper.id]

    def test_unknown_staff_rejected(self, project_service, project, engineer, customer):
        with pytest.raises(NotFoundError):
            project_service.assign_fabrication_staff(actor_for(engineer), project.id, customer.id, [])


@pytest.mark.projects
class TestManualTransitions:
    def test_skipping_phases_is_invalid(self, project_service, project, sales_staff):
        with pytest.raises(InvalidTransitionError):
            project_service.transition_project(
                actor_for(sales_staff), project.id, ProjectStatus.FABRICATION
            )

    def test_cancel_with_reason(self, project_service, project, sales_staff):
        cancelled = project_service.transition_project(
            actor_for(sales_staff), project.id, ProjectStatus.CANCELLED, "Budget"
        )

        assert cancelled.status == ProjectStatus.CANCELLED
        assert cancelled.cancel_reason == "Budget"

    def test_unrelated_staff_cannot_transition(self, project_service, project, other_sales_staff):
        with pytest.raises(ForbiddenError):
            project_service.transition_project(
                actor_for(other_sales_staff), project.id, ProjectStatus.CANCELLED
            )


@pytest.mark.projects
class TestCrud:
    def test_manual_create_from_completed_appointment(
        self, db_session, project_service, customer, sales_staff
    ):
        appointment = make_appointment(
            db_session, customer, status=AppointmentStatus.COMPLETED, sales_staff_id=sales_staff.id
        )
        data = ProjectCreate(appointmentId=appointment.id, title="Carport", serviceType="Roofing")

        project = project_service.create_project(actor_for(sales_staff), data)

        assert project.status == ProjectStatus.DRAFT
        assert project.customer_id == customer.id
        with pytest.raises(DuplicateEntryError):
            project_service.create_project(actor_for(sales_staff), data)

    def test_open_appointment_cannot_seed_project(self, db_session, project_service, customer, sales_staff):
        appointment = make_appointment(db_session, customer, status=AppointmentStatus.CONFIRMED)

        with pytest.raises(BadRequestError):
            project_service.create_project(
                actor_for(sales_staff),
                ProjectCreate(appointmentId=appointment.id, title="Carport", serviceType="Roofing"),
            )

    def test_update_only_while_editable(self, db_session, project_service, customer, sales_staff):
        project = make_project(
            db_session, customer, status=ProjectStatus.APPROVED, sales_staff_id=sales_staff.id
        )

        with pytest.raises(BadRequestError):
            project_service.update_project(actor_for(sales_staff), project.id, ProjectUpdate(title="New"))

    def test_soft_deleted_project_disappears(self, project_service, project, admin):
        project_service.soft_delete_project(actor_for(admin), project.id)

        with pytest.raises(NotFoundError):
            project_service.get_project(actor_for(admin), project.id)
        assert project_service.list_projects(actor_for(admin)) == []

    def test_list_scoped_by_membership(self, db_session, project_service, project, customer, other_customer, engineer, admin):
        other = make_project(db_session, other_customer)
        project_service.assign_engineers(actor_for(admin), other.id, [engineer.id])

        assert [p.id for p in project_service.list_projects(actor_for(customer))] == [project.id]
        assert [p.id for p in project_service.list_projects(actor_for(engineer))] == [other.id]
        assert len(project_service.list_projects(actor_for(admin))) == 2
