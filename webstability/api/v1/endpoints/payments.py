"""
Payments API - provider callbacks and payment links.

The ``confirmed``/``failed``/``refunded`` routes are for trusted internal
callers (the dashboard or a reconciliation job). Mollie itself only calls
``/webhook`` with a payment id, which is looked up at Mollie before anything
is recorded.
"""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Form, Request
from pydantic import BaseModel, Field

from webstability.api.v1.deps import get_lifecycle_service
from webstability.api.v1.helpers.responses import (
    APIResponse,
    error_response,
    success_response,
    unwrap_or_raise,
)
from webstability.core.errors import ErrorKind
from webstability.core.lifecycle import ProjectLifecycleService
from webstability.models.pydantic_models.project import ProjectModel

logger = logging.getLogger(__name__)
router = APIRouter()


class PaymentConfirmedRequest(BaseModel):
    project_id: str
    amount: Decimal = Field(..., gt=0)
    reference: str = Field(..., min_length=1)


class PaymentEventRequest(BaseModel):
    project_id: str
    reference: str | None = None


class PaymentLinkRequest(BaseModel):
    amount: Decimal | None = Field(None, gt=0)
    description: str | None = None


class PaymentLinkOut(BaseModel):
    project_id: str
    payment_url: str
    payment_status: str


@router.post("/payments/confirmed", response_model=ProjectModel)
async def payment_confirmed(
    data: PaymentConfirmedRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(
        await service.record_payment_confirmed(data.project_id, data.amount, data.reference)
    )
    return ProjectModel.model_validate(project)


@router.post("/payments/failed", response_model=ProjectModel)
async def payment_failed(
    data: PaymentEventRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(
        await service.record_payment_failed(data.project_id, data.reference)
    )
    return ProjectModel.model_validate(project)


@router.post("/payments/refunded", response_model=ProjectModel)
async def payment_refunded(
    data: PaymentEventRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(await service.record_refund(data.project_id, data.reference))
    return ProjectModel.model_validate(project)


@router.post("/payments/webhook", response_model=APIResponse)
async def payment_webhook(
    request: Request,
    payment_id: str | None = Form(None, alias="id"),
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    """Mollie posts ``id=tr_xxx`` form-encoded; JSON bodies are accepted too."""
    if payment_id is None and "application/json" in request.headers.get(
        "content-type", ""
    ):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            payment_id = body.get("id")

    if not payment_id:
        return error_response(
            message="Missing payment id",
            status_code=422,
            kind=ErrorKind.INVALID_INPUT,
        )

    project = unwrap_or_raise(await service.handle_payment_webhook(payment_id))
    logger.info(f"Webhook for {payment_id} processed ({project.payment_status})")
    return success_response(
        message="Webhook processed",
        data={"project_id": project.project_id, "payment_status": project.payment_status},
    )


@router.post("/projects/{project_id}/payment-link", response_model=PaymentLinkOut)
async def request_payment_link(
    project_id: str,
    data: PaymentLinkRequest,
    service: ProjectLifecycleService = Depends(get_lifecycle_service),
):
    project = unwrap_or_raise(
        await service.request_payment_link(project_id, data.amount, data.description)
    )
    return PaymentLinkOut(
        project_id=project.project_id,
        payment_url=project.payment_url,
        payment_status=project.payment_status,
    )
