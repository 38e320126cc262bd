"""Inbound payment failure webhook from the payment processor."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from recovery.core.auth import get_current_workspace
from recovery.core.database import get_db
from recovery.core.exceptions import DunningError
from recovery.schemas.payment_failure import DetectionResult, PaymentFailureWebhookRequest
from recovery.services.payment_failure_detector import PaymentFailureDetector

router = APIRouter()


@router.post(
    "/",
    response_model=DetectionResult,
    status_code=202,
    summary="Report a failed subscription payment",
    responses={
        404: {"description": "Subscription not found"},
        422: {"description": "Validation error"},
    },
)
async def report_payment_failure(
    data: PaymentFailureWebhookRequest,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DetectionResult:
    """Record the failure and open a dunning campaign unless one is already running."""
    detector = PaymentFailureDetector(db)
    try:
        return detector.process_failed_payment_webhook(
            workspace_id, data.subscription_id, data.failure_data
        )
    except DunningError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
