"""Fabrication router"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...services.audit_service import RequestMeta
from ...shared.access import Actor
from .schemas import FabricationStatusResponse, FabricationUpdateCreate, FabricationUpdateResponse
from .service import FabricationService

router = APIRouter(prefix="/projects/{project_id}/fabrication", tags=["Fabrication"])


def get_fabrication_service(db: Session = Depends(get_db)) -> FabricationService:
    """Dependency injection for FabricationService"""
    return FabricationService(db)


@router.get("", response_model=list[FabricationUpdateResponse])
async def list_fabrication_updates(
    project_id: int,
    actor: Actor = Depends(get_current_actor),
    service: FabricationService = Depends(get_fabrication_service),
):
    return service.list_updates(actor, project_id)


@router.get("/status", response_model=FabricationStatusResponse)
async def get_fabrication_status(
    project_id: int,
    actor: Actor = Depends(get_current_actor),
    service: FabricationService = Depends(get_fabrication_service),
):
    return service.get_latest_status(actor, project_id)


@router.post("", response_model=FabricationUpdateResponse, status_code=201)
async def create_fabrication_update(
    project_id: int,
    data: FabricationUpdateCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: FabricationService = Depends(get_fabrication_service),
):
    return service.create_update(actor, project_id, data, RequestMeta.from_request(request))
