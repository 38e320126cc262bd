"""DunningEmailTemplate model - workspace-specific dunning email copy."""

from enum import Enum

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text, func

from recovery.core.database import Base
from recovery.models.shared import DEFAULT_WORKSPACE_ID, AwareDateTime, UUIDType, generate_uuid


class EmailTemplateType(str, Enum):
    PRE_DUNNING = "pre_dunning"
    ATTEMPT_1 = "attempt_1"
    ATTEMPT_2 = "attempt_2"
    FINAL_NOTICE = "final_notice"
    RECOVERY_SUCCESS = "recovery_success"
    CANCELLATION = "cancellation"


class DunningEmailTemplate(Base):
    __tablename__ = "dunning_email_templates"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    name = Column(String(255), nullable=False)
    template_type = Column(String(50), nullable=False, index=True)
    subject = Column(String(500), nullable=False)
    body_html = Column(Text, nullable=False)
    body_text = Column(Text, nullable=True)
    available_variables = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(AwareDateTime, nullable=True)
