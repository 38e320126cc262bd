"""DunningEmailTemplate repository for data access."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recovery.models.dunning_email_template import DunningEmailTemplate


class DunningEmailTemplateRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self, workspace_id: UUID, template_type: str | None = None
    ) -> list[DunningEmailTemplate]:
        query = self.db.query(DunningEmailTemplate).filter(
            DunningEmailTemplate.workspace_id == workspace_id,
            DunningEmailTemplate.deleted_at.is_(None),
        )
        if template_type is not None:
            query = query.filter(DunningEmailTemplate.template_type == template_type)
        return query.order_by(DunningEmailTemplate.created_at.desc()).all()

    def get_by_id(
        self, template_id: UUID, workspace_id: UUID | None = None
    ) -> DunningEmailTemplate | None:
        query = self.db.query(DunningEmailTemplate).filter(
            DunningEmailTemplate.id == template_id,
            DunningEmailTemplate.deleted_at.is_(None),
        )
        if workspace_id is not None:
            query = query.filter(DunningEmailTemplate.workspace_id == workspace_id)
        return query.first()

    def get_active_by_type(
        self, workspace_id: UUID, template_type: str
    ) -> DunningEmailTemplate | None:
        return (
            self.db.query(DunningEmailTemplate)
            .filter(
                DunningEmailTemplate.workspace_id == workspace_id,
                DunningEmailTemplate.template_type == template_type,
                DunningEmailTemplate.is_active.is_(True),
                DunningEmailTemplate.deleted_at.is_(None),
            )
            .first()
        )

    def create(self, workspace_id: UUID, **fields: Any) -> DunningEmailTemplate:
        """Create a template; an active template replaces the active one of its type."""
        if fields.get("is_active", True):
            self.db.query(DunningEmailTemplate).filter(
                DunningEmailTemplate.workspace_id == workspace_id,
                DunningEmailTemplate.template_type == fields["template_type"],
                DunningEmailTemplate.is_active.is_(True),
            ).update({DunningEmailTemplate.is_active: False}, synchronize_session="fetch")
        template = DunningEmailTemplate(workspace_id=workspace_id, **fields)
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        return template
