"""DunningCampaign model - one recovery process for a failed subscription or payment."""

from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
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
from recovery.models.shared import DEFAULT_WORKSPACE_ID, AwareDateTime, UUIDType, generate_uuid, utc_now


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    RECOVERED = "recovered"
    FAILED = "failed"


OPEN_CAMPAIGN_STATUSES = (CampaignStatus.ACTIVE.value, CampaignStatus.PAUSED.value)

_OPEN_STATUS_CLAUSE = "status IN ('active', 'paused')"


class DunningCampaign(Base):
    """DunningCampaign model - tracks a single failure through its retry sequence."""

    __tablename__ = "dunning_campaigns"
    __table_args__ = (
        CheckConstraint(
            "(subscription_id IS NOT NULL AND payment_id IS NULL)"
            " OR (subscription_id IS NULL AND payment_id IS NOT NULL)",
            name="chk_dunning_campaigns_target",
        ),
        Index(
            "uq_dunning_campaigns_open_subscription",
            "subscription_id",
            unique=True,
            sqlite_where=text(_OPEN_STATUS_CLAUSE),
            postgresql_where=text(_OPEN_STATUS_CLAUSE),
        ),
        Index(
            "uq_dunning_campaigns_open_payment",
            "payment_id",
            unique=True,
            sqlite_where=text(_OPEN_STATUS_CLAUSE),
            postgresql_where=text(_OPEN_STATUS_CLAUSE),
        ),
        Index("ix_dunning_campaigns_status_next_retry_at", "status", "next_retry_at"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    configuration_id = Column(
        UUIDType,
        ForeignKey("dunning_configurations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    subscription_id = Column(
        UUIDType, ForeignKey("subscriptions.id", ondelete="RESTRICT"), nullable=True
    )
    payment_id = Column(UUIDType, ForeignKey("payments.id", ondelete="RESTRICT"), nullable=True)
    customer_id = Column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status = Column(String(20), nullable=False, default=CampaignStatus.ACTIVE.value)
    started_at = Column(AwareDateTime, nullable=False, default=utc_now)
    completed_at = Column(AwareDateTime, nullable=True)

    current_attempt = Column(Integer, nullable=False, default=0)
    max_retry_attempts = Column(Integer, nullable=False)
    next_retry_at = Column(AwareDateTime, nullable=True)
    last_retry_at = Column(AwareDateTime, nullable=True)

    recovered_at = Column(AwareDateTime, nullable=True)
    recovered_amount_cents = Column(BigInteger, nullable=True)
    final_action_taken = Column(String(50), nullable=True)
    final_action_at = Column(AwareDateTime, nullable=True)

    original_failure_reason = Column(Text, nullable=True)
    original_amount_cents = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    strategy = Column(String(30), nullable=True)
    campaign_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
