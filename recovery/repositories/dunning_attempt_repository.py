"""DunningAttempt repository for data access."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recovery.models.dunning_attempt import DunningAttempt


class DunningAttemptRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, attempt_id: UUID) -> DunningAttempt | None:
        return self.db.query(DunningAttempt).filter(DunningAttempt.id == attempt_id).first()

    def get_by_campaign(self, campaign_id: UUID) -> list[DunningAttempt]:
        return (
            self.db.query(DunningAttempt)
            .filter(DunningAttempt.campaign_id == campaign_id)
            .order_by(DunningAttempt.attempt_number.asc())
            .all()
        )

    def create(self, **fields: Any) -> DunningAttempt:
        attempt = DunningAttempt(**fields)
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt

    def update(self, attempt: DunningAttempt, **fields: Any) -> DunningAttempt:
        for key, value in fields.items():
            setattr(attempt, key, value)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt
