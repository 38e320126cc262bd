"""DunningConfiguration model - per-workspace retry policy."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)

from recovery.core.database import Base
from recovery.models.shared import DEFAULT_WORKSPACE_ID, AwareDateTime, UUIDType, generate_uuid

DEFAULT_RETRY_INTERVAL_DAYS = [3, 7, 7, 7]
POLICY_SCHEMA_VERSION = 1


class ActionKind(str, Enum):
    """Actions a single dunning attempt can perform."""

    RETRY_PAYMENT = "retry_payment"
    EMAIL = "email"
    IN_APP = "in_app"


class FinalAction(str, Enum):
    """Terminal side effect once all retries are exhausted."""

    CANCEL = "cancel"
    PAUSE = "pause"
    DOWNGRADE = "downgrade"


class DunningConfiguration(Base):
    """DunningConfiguration model - retry schedule, per-attempt actions and final action."""

    __tablename__ = "dunning_configurations"
    __table_args__ = (
        Index(
            "uq_dunning_configurations_default_per_workspace",
            "workspace_id",
            unique=True,
            sqlite_where=text("is_default = 1 AND deleted_at IS NULL"),
            postgresql_where=text("is_default AND deleted_at IS NULL"),
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)

    max_retry_attempts = Column(Integer, nullable=False, default=4)
    retry_interval_days = Column(
        JSON, nullable=False, default=lambda: list(DEFAULT_RETRY_INTERVAL_DAYS)
    )
    # [{"attempt": 1, "actions": ["retry_payment", "email"], "email_template_id": "..."}]
    attempt_actions = Column(JSON, nullable=False, default=list)
    final_action = Column(String(50), nullable=False, default=FinalAction.CANCEL.value)
    final_action_config = Column(JSON, nullable=False, default=dict)

    send_pre_dunning_reminder = Column(Boolean, nullable=False, default=True)
    pre_dunning_days = Column(Integer, nullable=False, default=3)
    allow_customer_retry = Column(Boolean, nullable=False, default=True)
    grace_period_hours = Column(Integer, nullable=False, default=24)
    schema_version = Column(Integer, nullable=False, default=POLICY_SCHEMA_VERSION)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(AwareDateTime, nullable=True)
