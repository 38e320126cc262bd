"""DunningAttempt model - one execution of the policy for an attempt number."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from recovery.core.database import Base
from recovery.models.shared import AwareDateTime, UUIDType, generate_uuid, utc_now


class AttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class DunningAttempt(Base):
    __tablename__ = "dunning_attempts"
    __table_args__ = (
        UniqueConstraint("campaign_id", "attempt_number", name="uq_dunning_attempts_number"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    campaign_id = Column(
        UUIDType,
        ForeignKey("dunning_campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attempt_number = Column(Integer, nullable=False)
    attempt_type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=AttemptStatus.PENDING.value)
    started_at = Column(AwareDateTime, nullable=False, default=utc_now)
    completed_at = Column(AwareDateTime, nullable=True)

    payment_error = Column(Text, nullable=True)
    transaction_reference = Column(String(255), nullable=True)

    communication_sent = Column(Boolean, nullable=False, default=False)
    communication_error = Column(Text, nullable=True)
    email_template_id = Column(UUIDType, nullable=True)

    attempt_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
