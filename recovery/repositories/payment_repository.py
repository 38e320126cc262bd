"""Payment repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from recovery.models.payment import Payment, PaymentStatus


class PaymentRepository:
    """Repository for Payment model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, payment_id: UUID, workspace_id: UUID | None = None) -> Payment | None:
        """Get a payment by ID."""
        query = self.db.query(Payment).filter(Payment.id == payment_id)
        if workspace_id is not None:
            query = query.filter(Payment.workspace_id == workspace_id)
        return query.first()

    def get_failed_since(self, since: datetime) -> list[Payment]:
        """Get failed payments created at or after ``since``."""
        return (
            self.db.query(Payment)
            .filter(
                Payment.status == PaymentStatus.FAILED.value,
                Payment.created_at >= since,
            )
            .order_by(Payment.created_at.asc())
            .all()
        )

    def count_outcomes_for_customer(self, customer_id: UUID) -> tuple[int, int]:
        """Return (succeeded, failed) payment counts for a customer."""
        row: Any = (
            self.db.query(
                func.sum(
                    case((Payment.status == PaymentStatus.SUCCEEDED.value, 1), else_=0)
                ).label("successes"),
                func.sum(case((Payment.status == PaymentStatus.FAILED.value, 1), else_=0)).label(
                    "failures"
                ),
            )
            .filter(Payment.customer_id == customer_id)
            .first()
        )
        if row is None:
            return 0, 0
        return int(row.successes or 0), int(row.failures or 0)
