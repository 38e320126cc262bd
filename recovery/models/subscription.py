from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, func

from recovery.core.database import Base
from recovery.models.shared import DEFAULT_WORKSPACE_ID, AwareDateTime, UUIDType, generate_uuid


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELED = "canceled"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    customer_id = Column(
        UUIDType,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    price_id = Column(
        UUIDType,
        ForeignKey("prices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    product_name = Column(String(255), nullable=True)
    status = Column(
        String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True
    )
    cancel_at = Column(AwareDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    paused_at = Column(AwareDateTime, nullable=True)
    canceled_at = Column(AwareDateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
