"""Payment failure detection schemas."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentFailureWebhookRequest(BaseModel):
    """Payload posted by the payment processor when a charge fails."""

    subscription_id: UUID
    failure_data: dict[str, Any] = Field(default_factory=dict)


class DetectionError(BaseModel):
    source_id: UUID
    message: str


class DetectionResult(BaseModel):
    """Counts and ids collected while turning failures into campaigns."""

    failures_found: int = 0
    campaigns_created: int = 0
    campaigns_skipped: int = 0
    created_campaign_ids: list[UUID] = Field(default_factory=list)
    errors: list[DetectionError] = Field(default_factory=list)
