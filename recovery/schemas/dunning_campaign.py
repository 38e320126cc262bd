"""DunningCampaign schemas."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field

OutcomeStatus = Literal["recovered", "retried", "failed", "error", "deferred"]


class DunningCampaignCreate(BaseModel):
    """Parameters for opening a campaign against exactly one subscription or payment."""

    configuration_id: UUID
    subscription_id: UUID | None = None
    payment_id: UUID | None = None
    workspace_id: UUID | None = None
    customer_id: UUID | None = None
    original_amount_cents: int = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)
    trigger_reason: str | None = None
    strategy: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class DunningCampaignResponse(BaseModel):
    """Schema for dunning campaign response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: UUID
    configuration_id: UUID
    subscription_id: UUID | None = None
    payment_id: UUID | None = None
    customer_id: UUID
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    current_attempt: int
    max_retry_attempts: int
    next_retry_at: datetime | None = None
    last_retry_at: datetime | None = None
    recovered_at: datetime | None = None
    recovered_amount_cents: int | None = None
    final_action_taken: str | None = None
    final_action_at: datetime | None = None
    original_failure_reason: str | None = None
    original_amount_cents: int
    currency: str
    strategy: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("campaign_metadata", "metadata"),
    )


class DunningCampaignDetail(DunningCampaignResponse):
    """Campaign joined with the customer and subscription it is chasing."""

    customer_name: str | None = None
    customer_email: str | None = None
    product_name: str | None = None


class DunningCampaignStats(BaseModel):
    """Aggregate campaign statistics for a workspace and period."""

    total_campaigns: int
    active_campaigns: int
    paused_campaigns: int
    recovered_campaigns: int
    failed_campaigns: int
    recovery_rate: float
    total_at_risk_cents: int
    total_recovered_cents: int
    total_lost_cents: int
    currency: str | None = None


class CampaignOutcome(BaseModel):
    """What happened to one campaign during a batch run."""

    campaign_id: UUID
    status: OutcomeStatus
    attempt_number: int | None = None
    next_retry_at: datetime | None = None
    payment_retried: bool = False
    emails_sent: int = 0
    error: str | None = None


class BatchResult(BaseModel):
    """Per-campaign outcomes of a process_due_campaigns run."""

    outcomes: list[CampaignOutcome] = Field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return len(self.outcomes)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def recovered(self) -> int:
        return self._count("recovered")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def retried(self) -> int:
        return self._count("retried")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> int:
        return self._count("failed")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def errors(self) -> int:
        return self._count("error")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def deferred(self) -> int:
        return self._count("deferred")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def payments_retried(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.payment_retried)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def emails_sent(self) -> int:
        return sum(outcome.emails_sent for outcome in self.outcomes)
