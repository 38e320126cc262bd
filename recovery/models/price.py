from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, func

from recovery.core.database import Base
from recovery.models.shared import DEFAULT_WORKSPACE_ID, UUIDType, generate_uuid


class Price(Base):
    """Recurring price a subscription is billed at."""

    __tablename__ = "prices"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    unit_amount_cents = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    interval = Column(String(20), nullable=False, default="month")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
