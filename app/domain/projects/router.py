"""Project router - FastAPI endpoints for projects"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...services.audit_service import RequestMeta
from ...shared.access import Actor
from .schemas import (
    EngineerAssignment,
    FabricationAssignment,
    ProjectCreate,
    ProjectResponse,
    ProjectTransition,
    ProjectUpdate,
)
from .service import ProjectService

router = APIRouter(prefix="/projects", tags=["Projects"])


def get_project_service(db: Session = Depends(get_db)) -> ProjectService:
    """Dependency injection for ProjectService"""
    return ProjectService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    status: Optional[str] = Query(None),
    active_only: bool = Query(False),
    search: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    """Projects visible to the current user"""
    return service.list_projects(actor, status, active_only, search, limit, offset)


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    data: ProjectCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    return service.create_project(actor, data, RequestMeta.from_request(request))


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    return service.get_project(actor, project_id)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    data: ProjectUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    return service.update_project(actor, project_id, data, RequestMeta.from_request(request))


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: int,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    """Soft delete"""
    service.soft_delete_project(actor, project_id, RequestMeta.from_request(request))


# ============================================================================
# STAFFING & STATUS
# ============================================================================


@router.put("/{project_id}/engineers", response_model=ProjectResponse)
async def assign_engineers(
    project_id: int,
    data: EngineerAssignment,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    return service.assign_engineers(
        actor, project_id, data.engineerIds, RequestMeta.from_request(request)
    )


@router.put("/{project_id}/fabrication-team", response_model=ProjectResponse)
async def assign_fabrication_staff(
    project_id: int,
    data: FabricationAssignment,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    return service.assign_fabrication_staff(
        actor, project_id, data.leadId, data.assistantIds, RequestMeta.from_request(request)
    )


@router.post("/{project_id}/transition", response_model=ProjectResponse)
async def transition_project(
    project_id: int,
    data: ProjectTransition,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: ProjectService = Depends(get_project_service),
):
    return service.transition_project(
        actor, project_id, data.status, data.reason, RequestMeta.from_request(request)
    )
