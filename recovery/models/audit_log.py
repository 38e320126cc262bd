"""AuditLog model for tracking state changes made by the dunning system."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, func

from recovery.core.database import Base
from recovery.models.shared import DEFAULT_WORKSPACE_ID, UUIDType, generate_uuid


class AuditLog(Base):
    """AuditLog model - records state changes to campaigns and subscriptions."""

    __tablename__ = "audit_logs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(UUIDType, nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    changes = Column(JSON, nullable=False, default=dict)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
