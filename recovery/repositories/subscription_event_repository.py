"""SubscriptionEvent repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from recovery.models.subscription_event import (
    FAILURE_EVENT_TYPES,
    SubscriptionEvent,
    SubscriptionEventType,
)


class SubscriptionEventRepository:
    """Repository for SubscriptionEvent model."""

    def __init__(self, db: Session):
        self.db = db

    def get_failures_since(self, since: datetime) -> list[SubscriptionEvent]:
        """Get failed and failed-redemption events that occurred at or after ``since``."""
        return (
            self.db.query(SubscriptionEvent)
            .filter(
                SubscriptionEvent.event_type.in_(FAILURE_EVENT_TYPES),
                SubscriptionEvent.occurred_at >= since,
            )
            .order_by(SubscriptionEvent.occurred_at.asc())
            .all()
        )

    def count_outcomes(self, subscription_id: UUID) -> tuple[int, int]:
        """Return (successes, failures) recorded for a subscription."""
        row: Any = (
            self.db.query(
                func.sum(
                    case(
                        (SubscriptionEvent.event_type == SubscriptionEventType.REDEEMED.value, 1),
                        else_=0,
                    )
                ).label("successes"),
                func.sum(
                    case((SubscriptionEvent.event_type.in_(FAILURE_EVENT_TYPES), 1), else_=0)
                ).label("failures"),
            )
            .filter(SubscriptionEvent.subscription_id == subscription_id)
            .first()
        )
        if row is None:
            return 0, 0
        return int(row.successes or 0), int(row.failures or 0)

    def create(self, **fields: Any) -> SubscriptionEvent:
        event = SubscriptionEvent(**fields)
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event
