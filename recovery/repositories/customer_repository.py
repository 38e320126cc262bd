from uuid import UUID

from sqlalchemy.orm import Session

from recovery.models.customer import Customer


class CustomerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, customer_id: UUID, workspace_id: UUID | None = None) -> Customer | None:
        query = self.db.query(Customer).filter(Customer.id == customer_id)
        if workspace_id is not None:
            query = query.filter(Customer.workspace_id == workspace_id)
        return query.first()
