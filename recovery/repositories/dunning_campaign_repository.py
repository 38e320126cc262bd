"""DunningCampaign repository for data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Query, Session

from recovery.core.sorting import apply_order_by
from recovery.models.dunning_campaign import (
    OPEN_CAMPAIGN_STATUSES,
    CampaignStatus,
    DunningCampaign,
)
from recovery.models.payment import Payment


class DunningCampaignRepository:
    """Repository for DunningCampaign model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        workspace_id: UUID,
        skip: int = 0,
        limit: int = 100,
        status: str | None = None,
        order_by: str | None = None,
    ) -> list[DunningCampaign]:
        """Get all dunning campaigns for a workspace."""
        query = self.db.query(DunningCampaign).filter(
            DunningCampaign.workspace_id == workspace_id,
        )
        if status is not None:
            query = query.filter(DunningCampaign.status == status)
        query = apply_order_by(query, DunningCampaign, order_by)
        return query.offset(skip).limit(limit).all()

    def get_by_id(
        self,
        campaign_id: UUID,
        workspace_id: UUID | None = None,
    ) -> DunningCampaign | None:
        """Get a dunning campaign by ID."""
        query = self.db.query(DunningCampaign).filter(DunningCampaign.id == campaign_id)
        if workspace_id is not None:
            query = query.filter(DunningCampaign.workspace_id == workspace_id)
        return query.first()

    def get_open_for_subscription(self, subscription_id: UUID) -> DunningCampaign | None:
        """Get the active or paused campaign for a subscription, if any."""
        return (
            self.db.query(DunningCampaign)
            .filter(
                DunningCampaign.subscription_id == subscription_id,
                DunningCampaign.status.in_(OPEN_CAMPAIGN_STATUSES),
            )
            .first()
        )

    def get_open_for_payment(self, payment_id: UUID) -> DunningCampaign | None:
        """Get the active or paused campaign for a payment, if any."""
        return (
            self.db.query(DunningCampaign)
            .filter(
                DunningCampaign.payment_id == payment_id,
                DunningCampaign.status.in_(OPEN_CAMPAIGN_STATUSES),
            )
            .first()
        )

    def get_open_for_subscription_payments(self, subscription_id: UUID) -> DunningCampaign | None:
        """Get an open payment-keyed campaign chasing a payment of the subscription."""
        return (
            self.db.query(DunningCampaign)
            .join(Payment, DunningCampaign.payment_id == Payment.id)
            .filter(
                Payment.subscription_id == subscription_id,
                DunningCampaign.status.in_(OPEN_CAMPAIGN_STATUSES),
            )
            .first()
        )

    def get_by_subscription(self, subscription_id: UUID) -> list[DunningCampaign]:
        """Get every campaign for a subscription, whatever its status."""
        return (
            self.db.query(DunningCampaign)
            .filter(DunningCampaign.subscription_id == subscription_id)
            .all()
        )

    def get_by_payment(self, payment_id: UUID) -> list[DunningCampaign]:
        """Get every campaign for a payment, whatever its status."""
        return self.db.query(DunningCampaign).filter(DunningCampaign.payment_id == payment_id).all()

    def get_due_for_retry(self, now: datetime, limit: int = 50) -> list[DunningCampaign]:
        """Get active campaigns whose next retry is due, oldest first."""
        return (
            self.db.query(DunningCampaign)
            .filter(
                DunningCampaign.status == CampaignStatus.ACTIVE.value,
                DunningCampaign.next_retry_at.isnot(None),
                DunningCampaign.next_retry_at <= now,
            )
            .order_by(DunningCampaign.next_retry_at.asc())
            .limit(limit)
            .all()
        )

    def create(self, **fields: Any) -> DunningCampaign:
        campaign = DunningCampaign(**fields)
        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def update(self, campaign: DunningCampaign, **fields: Any) -> DunningCampaign:
        for key, value in fields.items():
            setattr(campaign, key, value)
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def _stats_query(
        self,
        columns: list[Any],
        workspace_id: UUID,
        start: datetime | None,
        end: datetime | None,
    ) -> Query:  # type: ignore[type-arg]
        query = self.db.query(*columns).filter(DunningCampaign.workspace_id == workspace_id)
        if start is not None:
            query = query.filter(DunningCampaign.started_at >= start)
        if end is not None:
            query = query.filter(DunningCampaign.started_at <= end)
        return query

    def status_counts(
        self,
        workspace_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        """Count campaigns per status for a workspace, filtered on started_at."""
        rows = (
            self._stats_query(
                [DunningCampaign.status, func.count(DunningCampaign.id)], workspace_id, start, end
            )
            .group_by(DunningCampaign.status)
            .all()
        )
        return {str(status): int(count) for status, count in rows}

    def amounts_by_currency(
        self,
        workspace_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[str, int, int, int]]:
        """Return (currency, at_risk, recovered, lost) cent totals per currency."""
        status = DunningCampaign.status
        amount = DunningCampaign.original_amount_cents
        rows: list[Any] = (
            self._stats_query(
                [
                    DunningCampaign.currency,
                    func.sum(case((status.in_(OPEN_CAMPAIGN_STATUSES), amount), else_=0)),
                    func.sum(
                        case(
                            (
                                status == CampaignStatus.RECOVERED.value,
                                func.coalesce(DunningCampaign.recovered_amount_cents, amount),
                            ),
                            else_=0,
                        )
                    ),
                    func.sum(case((status == CampaignStatus.FAILED.value, amount), else_=0)),
                ],
                workspace_id,
                start,
                end,
            )
            .group_by(DunningCampaign.currency)
            .all()
        )
        return [
            (str(currency), int(at_risk or 0), int(recovered or 0), int(lost or 0))
            for currency, at_risk, recovered, lost in rows
        ]
