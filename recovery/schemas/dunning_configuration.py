"""DunningConfiguration schemas and the typed retry policy."""

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from recovery.models.dunning_configuration import (
    DEFAULT_RETRY_INTERVAL_DAYS,
    POLICY_SCHEMA_VERSION,
    ActionKind,
    FinalAction,
)

POLICY_FIELDS = frozenset(
    {
        "schema_version",
        "max_retry_attempts",
        "retry_interval_days",
        "attempt_actions",
        "final_action",
        "final_action_config",
        "grace_period_hours",
    }
)


class AttemptActionSchema(BaseModel):
    """Actions to run for a single attempt number."""

    attempt: int = Field(..., ge=1)
    actions: list[ActionKind] = Field(..., min_length=1)
    email_template_id: UUID | None = None

    @field_validator("actions")
    @classmethod
    def reject_repeated_actions(cls, value: list[ActionKind]) -> list[ActionKind]:
        if len(set(value)) != len(value):
            raise ValueError("actions must not repeat")
        return value


class DunningPolicy(BaseModel):
    """Retry policy parsed from a configuration's JSON documents.

    ``retry_interval_days`` is indexed by attempt offset: after attempt N fails,
    the next retry is scheduled ``retry_interval_days[N - 1]`` days later.
    """

    schema_version: Literal[1] = POLICY_SCHEMA_VERSION
    max_retry_attempts: int = Field(default=4, ge=1)
    retry_interval_days: list[Annotated[int, Field(ge=0)]] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_INTERVAL_DAYS)
    )
    attempt_actions: list[AttemptActionSchema] = Field(default_factory=list)
    final_action: FinalAction = FinalAction.CANCEL
    final_action_config: dict[str, Any] = Field(default_factory=dict)
    grace_period_hours: int = Field(default=24, ge=0)

    @model_validator(mode="after")
    def check_attempt_bounds(self) -> "DunningPolicy":
        seen: set[int] = set()
        for entry in self.attempt_actions:
            if entry.attempt > self.max_retry_attempts:
                raise ValueError(
                    f"attempt {entry.attempt} exceeds max_retry_attempts "
                    f"({self.max_retry_attempts})"
                )
            if entry.attempt in seen:
                raise ValueError(f"attempt {entry.attempt} is configured more than once")
            seen.add(entry.attempt)
        if len(self.retry_interval_days) < self.max_retry_attempts - 1:
            raise ValueError(
                "retry_interval_days needs at least max_retry_attempts - 1 entries"
            )
        return self

    def actions_for(self, attempt_number: int) -> AttemptActionSchema:
        """Return the configured action entry for an attempt, defaulting to a payment retry."""
        for entry in self.attempt_actions:
            if entry.attempt == attempt_number:
                return entry
        return AttemptActionSchema(attempt=attempt_number, actions=[ActionKind.RETRY_PAYMENT])

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_model(cls, config: Any) -> "DunningPolicy":
        """Re-parse the documents stored on a DunningConfiguration row."""
        return cls.model_validate(
            {
                "schema_version": config.schema_version or POLICY_SCHEMA_VERSION,
                "max_retry_attempts": config.max_retry_attempts,
                "retry_interval_days": config.retry_interval_days or [],
                "attempt_actions": config.attempt_actions or [],
                "final_action": config.final_action,
                "final_action_config": config.final_action_config or {},
                "grace_period_hours": config.grace_period_hours,
            }
        )


class DunningConfigurationCreate(DunningPolicy):
    """Schema for creating a dunning configuration."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    is_active: bool = True
    is_default: bool = False
    send_pre_dunning_reminder: bool = True
    pre_dunning_days: int = Field(default=3, ge=0)
    allow_customer_retry: bool = True

    def policy(self) -> DunningPolicy:
        return DunningPolicy.model_validate(self.model_dump(include=set(POLICY_FIELDS)))


class DunningConfigurationResponse(BaseModel):
    """Schema for dunning configuration response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: UUID
    name: str
    description: str | None = None
    is_active: bool
    is_default: bool
    max_retry_attempts: int
    retry_interval_days: list[int]
    attempt_actions: list[dict[str, Any]]
    final_action: str
    final_action_config: dict[str, Any]
    send_pre_dunning_reminder: bool
    pre_dunning_days: int
    allow_customer_retry: bool
    grace_period_hours: int
    schema_version: int
    created_at: datetime
    updated_at: datetime
