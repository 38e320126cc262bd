"""Payment model for one-off and recurring charges."""

from enum import Enum

from sqlalchemy import BigInteger, Column, ForeignKey, String, Text

from recovery.core.database import Base
from recovery.models.shared import DEFAULT_WORKSPACE_ID, AwareDateTime, UUIDType, generate_uuid, utc_now


class PaymentStatus(str, Enum):
    """Payment status enum."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Payment(Base):
    """Payment model - a single charge against a customer."""

    __tablename__ = "payments"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    subscription_id = Column(
        UUIDType, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(AwareDateTime, nullable=False, default=utc_now, index=True)
