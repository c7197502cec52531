"""Payment router - plans, proofs and cashier verification"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...services.audit_service import RequestMeta
from ...shared.access import Actor
from .schemas import (
    PaymentDecline,
    PaymentPlanCreate,
    PaymentPlanResponse,
    PaymentPlanUpdate,
    PaymentProofSubmit,
    PaymentResponse,
)
from .service import PaymentService

router = APIRouter(tags=["Payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


# ============================================================================
# PAYMENT PLANS
# ============================================================================


@router.post(
    "/projects/{project_id}/payment-plan", response_model=PaymentPlanResponse, status_code=201
)
async def create_payment_plan(
    project_id: int,
    data: PaymentPlanCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_payment_plan(actor, project_id, data, RequestMeta.from_request(request))


@router.patch("/projects/{project_id}/payment-plan", response_model=PaymentPlanResponse)
async def update_payment_plan(
    project_id: int,
    data: PaymentPlanUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    """Rejected once any stage has been verified"""
    return service.update_payment_plan(actor, project_id, data, RequestMeta.from_request(request))


@router.get("/projects/{project_id}/payment-plan", response_model=PaymentPlanResponse)
async def get_payment_plan(
    project_id: int,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_plan_for_project(actor, project_id)


@router.get("/projects/{project_id}/payments", response_model=list[PaymentResponse])
async def list_project_payments(
    project_id: int,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.list_payments_for_project(actor, project_id)


# ============================================================================
# PROOFS & VERIFICATION
# ============================================================================


@router.post("/payment-stages/{stage_id}/proofs", response_model=PaymentResponse, status_code=201)
async def submit_payment_proof(
    stage_id: int,
    data: PaymentProofSubmit,
    request: Request,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    """Customer submits proof of payment; a replayed Idempotency-Key returns the original"""
    return service.submit_payment_proof(
        actor, stage_id, data, idempotency_key, RequestMeta.from_request(request)
    )


@router.get("/payments/pending", response_model=list[PaymentResponse])
async def list_pending_payments(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.list_pending_payments(actor, limit, offset)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_payment(actor, payment_id)


@router.post("/payments/{payment_id}/verify", response_model=PaymentResponse)
async def verify_payment(
    payment_id: int,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.verify_payment(actor, payment_id, RequestMeta.from_request(request))


@router.post("/payments/{payment_id}/decline", response_model=PaymentResponse)
async def decline_payment(
    payment_id: int,
    data: PaymentDecline,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.decline_payment(actor, payment_id, data.reason, RequestMeta.from_request(request))
