import pytest
from conftest import actor_for, make_project, make_user

from app.domain.blueprints.schemas import BlueprintUpload
from app.domain.blueprints.service import MAX_VERSIONS, BlueprintService
from app.models_project import Project
from app.shared.access import Role
from app.shared.errors import (
    BadRequestError,
    DuplicateEntryError,
    ForbiddenError,
    InvalidTransitionError,
    LimitReachedError,
)
from app.shared.state_machine import BlueprintStatus, ProjectStatus


@pytest.fixture
def blueprint_service(db_session):
    return BlueprintService(db_session)


@pytest.fixture
def project(db_session, customer, engineer):
    return make_project(db_session, customer, status=ProjectStatus.BLUEPRINT, engineer_ids=[engineer.id])


def upload(version: int) -> BlueprintUpload:
    return BlueprintUpload(
        blueprintKey=f"blueprints/1/v{version}.pdf",
        costingKey=f"costings/1/v{version}.xlsx",
        quotation={"total": 85000},
    )


@pytest.fixture
def first_version(blueprint_service, project, engineer):
    return blueprint_service.upload_blueprint(actor_for(engineer), project.id, upload(1))


@pytest.mark.blueprints
class TestUpload:
    def test_first_upload(self, first_version, engineer):
        assert first_version.version == 1
        assert first_version.status == BlueprintStatus.UPLOADED
        assert first_version.uploaded_by_id == engineer.id

    def test_upload_advances_submitted_project(self, db_session, blueprint_service, customer, engineer):
        project = make_project(db_session, customer, engineer_ids=[engineer.id])

        blueprint_service.upload_blueprint(actor_for(engineer), project.id, upload(1))

        assert db_session.get(Project, project.id).status == ProjectStatus.BLUEPRINT

    def test_second_initial_upload_rejected(self, blueprint_service, first_version, project, engineer):
        with pytest.raises(DuplicateEntryError):
            blueprint_service.upload_blueprint(actor_for(engineer), project.id, upload(1))

    def test_unassigned_engineer_rejected(self, db_session, blueprint_service, project):
        stranger = make_user(db_session, "eng9@example.com", [Role.ENGINEER])
        with pytest.raises(ForbiddenError):
            blueprint_service.upload_blueprint(actor_for(stranger), project.id, upload(1))

    def test_revision_needs_a_request(self, blueprint_service, first_version, project, engineer):
        with pytest.raises(InvalidTransitionError):
            blueprint_service.upload_revision(actor_for(engineer), project.id, upload(2))


@pytest.mark.blueprints
class TestApproval:
    def test_both_components_approve_design(self, db_session, blueprint_service, first_version, project, customer):
        """Approving only the drawing leaves the review open."""
        partial = blueprint_service.approve_component(actor_for(customer), first_version.id, "blueprint")
        assert partial.status == BlueprintStatus.UPLOADED
        assert db_session.get(Project, project.id).status == ProjectStatus.BLUEPRINT

        approved = blueprint_service.approve_component(actor_for(customer), first_version.id, "costing")

        assert approved.status == BlueprintStatus.APPROVED
        assert approved.blueprint_approved and approved.costing_approved
        assert db_session.get(Project, project.id).status == ProjectStatus.APPROVED

    def test_engineer_cannot_approve(self, blueprint_service, first_version, engineer):
        with pytest.raises(ForbiddenError):
            blueprint_service.approve_component(actor_for(engineer), first_version.id, "blueprint")

    def test_approved_design_is_closed(self, blueprint_service, first_version, customer):
        blueprint_service.approve_component(actor_for(customer), first_version.id, "blueprint")
        blueprint_service.approve_component(actor_for(customer), first_version.id, "costing")

        with pytest.raises(BadRequestError):
            blueprint_service.approve_component(actor_for(customer), first_version.id, "costing")

    def test_design_awaiting_revision_cannot_be_approved(self, blueprint_service, first_version, customer):
        blueprint_service.request_revision(actor_for(customer), first_version.id, "Wider gate")

        with pytest.raises(BadRequestError) as exc_info:
            blueprint_service.approve_component(actor_for(customer), first_version.id, "blueprint")
        assert exc_info.value.details == {"status": BlueprintStatus.REVISION_REQUESTED}


@pytest.mark.blueprints
class TestRevisions:
    def test_revision_round_trip(self, blueprint_service, first_version, project, customer, engineer):
        requested = blueprint_service.request_revision(
            actor_for(customer), first_version.id, "Lower the height", ["revision-references/1/a.jpg"]
        )
        assert requested.status == BlueprintStatus.REVISION_REQUESTED
        assert requested.revision_ref_keys == ["revision-references/1/a.jpg"]

        second = blueprint_service.upload_revision(actor_for(engineer), project.id, upload(2))

        assert second.version == 2
        assert second.status == BlueprintStatus.UPLOADED
        assert blueprint_service.get_blueprint(actor_for(customer), first_version.id).status == (
            BlueprintStatus.REVISION_UPLOADED
        )
        assert blueprint_service.get_latest(actor_for(customer), project.id).id == second.id

    def test_old_version_cannot_be_reviewed(self, blueprint_service, first_version, project, customer, engineer):
        blueprint_service.request_revision(actor_for(customer), first_version.id, "Change color")
        blueprint_service.upload_revision(actor_for(engineer), project.id, upload(2))

        with pytest.raises(BadRequestError):
            blueprint_service.approve_component(actor_for(customer), first_version.id, "blueprint")

    def test_revision_cap(self, blueprint_service, first_version, project, customer, engineer):
        """After the allowed revisions the latest version must be accepted as is."""
        latest = first_version
        for version in range(2, MAX_VERSIONS + 1):
            blueprint_service.request_revision(actor_for(customer), latest.id, f"Round {version}")
            latest = blueprint_service.upload_revision(actor_for(engineer), project.id, upload(version))

        assert latest.version == MAX_VERSIONS
        with pytest.raises(LimitReachedError) as exc_info:
            blueprint_service.request_revision(actor_for(customer), latest.id, "One more")
        assert exc_info.value.code == "MAX_REVISIONS_REACHED"

        approved = blueprint_service.approve_component(actor_for(customer), latest.id, "blueprint")
        assert approved.blueprint_approved
