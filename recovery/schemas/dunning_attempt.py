"""DunningAttempt schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DunningAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    campaign_id: UUID
    attempt_number: int
    attempt_type: str
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    payment_error: str | None = None
    transaction_reference: str | None = None
    communication_sent: bool
    communication_error: str | None = None
    email_template_id: UUID | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("attempt_metadata", "metadata"),
    )
