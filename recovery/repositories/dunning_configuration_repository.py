"""DunningConfiguration repository for data access."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Query, Session

from recovery.core.sorting import apply_order_by
from recovery.models.dunning_configuration import DunningConfiguration


class DunningConfigurationRepository:
    """Repository for DunningConfiguration model."""

    def __init__(self, db: Session):
        self.db = db

    def _live(self, workspace_id: UUID) -> Query:  # type: ignore[type-arg]
        return self.db.query(DunningConfiguration).filter(
            DunningConfiguration.workspace_id == workspace_id,
            DunningConfiguration.deleted_at.is_(None),
        )

    def get_all(
        self,
        workspace_id: UUID,
        skip: int = 0,
        limit: int = 100,
        active_only: bool = False,
        order_by: str | None = None,
    ) -> list[DunningConfiguration]:
        query = self._live(workspace_id)
        if active_only:
            query = query.filter(DunningConfiguration.is_active.is_(True))
        query = apply_order_by(query, DunningConfiguration, order_by)
        return query.offset(skip).limit(limit).all()

    def get_by_id(
        self, configuration_id: UUID, workspace_id: UUID | None = None
    ) -> DunningConfiguration | None:
        query = self.db.query(DunningConfiguration).filter(
            DunningConfiguration.id == configuration_id,
            DunningConfiguration.deleted_at.is_(None),
        )
        if workspace_id is not None:
            query = query.filter(DunningConfiguration.workspace_id == workspace_id)
        return query.first()

    def get_default(self, workspace_id: UUID) -> DunningConfiguration | None:
        """Get the workspace's default configuration if it is active."""
        return (
            self._live(workspace_id)
            .filter(
                DunningConfiguration.is_default.is_(True),
                DunningConfiguration.is_active.is_(True),
            )
            .first()
        )

    def get_first_active(self, workspace_id: UUID) -> DunningConfiguration | None:
        return (
            self._live(workspace_id)
            .filter(DunningConfiguration.is_active.is_(True))
            .order_by(DunningConfiguration.created_at.asc())
            .first()
        )

    def create(self, workspace_id: UUID, **fields: Any) -> DunningConfiguration:
        """Create a configuration, clearing any other default in the same transaction."""
        if fields.get("is_default"):
            self._live(workspace_id).filter(
                DunningConfiguration.is_default.is_(True),
            ).update({DunningConfiguration.is_default: False}, synchronize_session="fetch")
        configuration = DunningConfiguration(workspace_id=workspace_id, **fields)
        self.db.add(configuration)
        self.db.commit()
        self.db.refresh(configuration)
        return configuration
