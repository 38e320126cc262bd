from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recovery.models.subscription import Subscription


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self, subscription_id: UUID, workspace_id: UUID | None = None
    ) -> Subscription | None:
        query = self.db.query(Subscription).filter(Subscription.id == subscription_id)
        if workspace_id is not None:
            query = query.filter(Subscription.workspace_id == workspace_id)
        return query.first()

    def update(self, subscription: Subscription, **fields: Any) -> Subscription:
        for key, value in fields.items():
            setattr(subscription, key, value)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription
