from __future__ import annotations

from ..extensions import db
from ..domain import jsonable
from ..fieldmap import row_to_domain
from ..time_utils import utcnow


class Sale(db.Model):
    """
    Completed sale (immutable once committed).

    WHY denormalized items: each line item is a product snapshot taken when it
    was added to the cart, so later product edits or deletes never change a
    historical sale and receipts can be reprinted without re-querying products.
    There is no void: corrections are made with inventory adjustments.
    """
    __tablename__ = "sales"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # List of cart item snapshots (JSON-safe: money as strings)
    items = db.Column(db.JSON, nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    # {"name", "lastName", "documentId", "nit"}
    client_data = db.Column(db.JSON, nullable=False)

    user_id = db.Column(db.Integer, nullable=True, index=True)
    user_name = db.Column(db.String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} total={self.total} items={len(self.items or [])}>"

    def to_record(self) -> dict:
        return row_to_domain("sales", self)

    def to_dict(self) -> dict:
        return jsonable(self.to_record())
