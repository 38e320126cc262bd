from uuid import UUID

from sqlalchemy.orm import Session

from recovery.models.workspace import Workspace


class WorkspaceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, workspace_id: UUID) -> Workspace | None:
        return self.db.query(Workspace).filter(Workspace.id == workspace_id).first()
