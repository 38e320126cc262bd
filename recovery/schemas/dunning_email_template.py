"""DunningEmailTemplate schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recovery.models.dunning_email_template import EmailTemplateType


class DunningEmailTemplateCreate(BaseModel):
    """Schema for creating a dunning email template."""

    name: str = Field(..., min_length=1, max_length=255)
    template_type: EmailTemplateType
    subject: str = Field(..., min_length=1, max_length=500)
    body_html: str = Field(..., min_length=1)
    body_text: str | None = None
    available_variables: list[str] = Field(default_factory=list)
    is_active: bool = True


class DunningEmailTemplateResponse(BaseModel):
    """Schema for dunning email template response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workspace_id: UUID
    name: str
    template_type: str
    subject: str
    body_html: str
    body_text: str | None = None
    available_variables: list[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime
