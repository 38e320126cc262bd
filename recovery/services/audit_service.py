"""Audit service for recording state changes to dunning entities."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recovery.repositories.audit_log_repository import AuditLogRepository


class AuditService:
    """Service for recording audit trail entries."""

    def __init__(self, db: Session):
        self.repo = AuditLogRepository(db)

    def log_create(
        self,
        resource_type: str,
        resource_id: UUID,
        workspace_id: UUID,
        actor_type: str = "system",
        actor_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Log a resource creation event."""
        self.repo.create(
            workspace_id=workspace_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action="created",
            changes=data or {},
            actor_type=actor_type,
            actor_id=actor_id,
        )

    def log_status_change(
        self,
        resource_type: str,
        resource_id: UUID,
        workspace_id: UUID,
        old_status: str,
        new_status: str,
        actor_type: str = "system",
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Log a status change event."""
        self.repo.create(
            workspace_id=workspace_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action="status_changed",
            changes={"status": {"old": old_status, "new": new_status}},
            actor_type=actor_type,
            actor_id=actor_id,
            metadata=metadata,
        )
