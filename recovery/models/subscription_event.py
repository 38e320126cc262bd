"""SubscriptionEvent model - billing history of a subscription."""

from enum import Enum

from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, String, Text, func

from recovery.core.database import Base
from recovery.models.shared import AwareDateTime, UUIDType, generate_uuid, utc_now


class SubscriptionEventType(str, Enum):
    REDEEMED = "redeemed"
    FAILED = "failed"
    FAILED_REDEMPTION = "failed_redemption"
    CANCELED = "canceled"
    PAUSED = "paused"
    RESUMED = "resumed"


FAILURE_EVENT_TYPES = (
    SubscriptionEventType.FAILED.value,
    SubscriptionEventType.FAILED_REDEMPTION.value,
)


class SubscriptionEvent(Base):
    __tablename__ = "subscription_events"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    subscription_id = Column(
        UUIDType,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(String(30), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    occurred_at = Column(AwareDateTime, nullable=False, default=utc_now, index=True)
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
