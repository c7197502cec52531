"""Blueprint router - design package endpoints"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...services.audit_service import RequestMeta
from ...shared.access import Actor
from .schemas import BlueprintResponse, BlueprintUpload, ComponentApproval, RevisionRequest
from .service import BlueprintService

router = APIRouter(tags=["Blueprints"])


def get_blueprint_service(db: Session = Depends(get_db)) -> BlueprintService:
    """Dependency injection for BlueprintService"""
    return BlueprintService(db)


# ============================================================================
# PROJECT-SCOPED
# ============================================================================


@router.get("/projects/{project_id}/blueprints", response_model=list[BlueprintResponse])
async def list_blueprints(
    project_id: int,
    actor: Actor = Depends(get_current_actor),
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.list_for_project(actor, project_id)


@router.get("/projects/{project_id}/blueprints/latest", response_model=BlueprintResponse)
async def get_latest_blueprint(
    project_id: int,
    actor: Actor = Depends(get_current_actor),
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.get_latest(actor, project_id)


@router.post("/projects/{project_id}/blueprints", response_model=BlueprintResponse, status_code=201)
async def upload_blueprint(
    project_id: int,
    data: BlueprintUpload,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.upload_blueprint(actor, project_id, data, RequestMeta.from_request(request))


@router.post(
    "/projects/{project_id}/blueprints/revisions",
    response_model=BlueprintResponse,
    status_code=201,
)
async def upload_revision(
    project_id: int,
    data: BlueprintUpload,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.upload_revision(actor, project_id, data, RequestMeta.from_request(request))


# ============================================================================
# REVIEW
# ============================================================================


@router.get("/blueprints/{blueprint_id}", response_model=BlueprintResponse)
async def get_blueprint(
    blueprint_id: int,
    actor: Actor = Depends(get_current_actor),
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.get_blueprint(actor, blueprint_id)


@router.post("/blueprints/{blueprint_id}/approve", response_model=BlueprintResponse)
async def approve_component(
    blueprint_id: int,
    data: ComponentApproval,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.approve_component(
        actor, blueprint_id, data.component, RequestMeta.from_request(request)
    )


@router.post("/blueprints/{blueprint_id}/revision-request", response_model=BlueprintResponse)
async def request_revision(
    blueprint_id: int,
    data: RevisionRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: BlueprintService = Depends(get_blueprint_service),
):
    return service.request_revision(
        actor, blueprint_id, data.notes, data.referenceKeys, RequestMeta.from_request(request)
    )
