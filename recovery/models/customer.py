from sqlalchemy import Column, DateTime, ForeignKey, String, func

from recovery.core.database import Base
from recovery.models.shared import DEFAULT_WORKSPACE_ID, UUIDType, generate_uuid


class Customer(Base):
    __tablename__ = "customers"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    external_id = Column(String(255), index=True, nullable=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
