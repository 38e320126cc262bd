from uuid import UUID

from sqlalchemy.orm import Session

from recovery.models.price import Price


class PriceRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, price_id: UUID) -> Price | None:
        return self.db.query(Price).filter(Price.id == price_id).first()
