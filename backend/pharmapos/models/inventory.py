from __future__ import annotations

from ..extensions import db
from ..domain import jsonable
from ..fieldmap import row_to_domain
from ..time_utils import utcnow


class Product(db.Model):
    """
    Product master data plus current stock.

    QUANTITY RULE:
    quantity is only changed by inventory_service / sales_service through the
    atomic record_store primitives, and every change is paired with a Movement
    written in the same DB transaction. Descriptive edits never touch it.

    Deleting a product is permanent. Sales and movements keep denormalized
    copies of the name and quantities so they stay readable afterwards.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    form = db.Column(db.String(120), nullable=False)
    content = db.Column(db.String(120), nullable=False)
    line = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(120), nullable=True)
    batch = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    # Legacy rows may carry 0 (cost not recorded)
    cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_record(self) -> dict:
        return row_to_domain("products", self)

    def to_dict(self) -> dict:
        return jsonable(self.to_record())


class Movement(db.Model):
    """
    Append-only stock audit record.

    product_id is intentionally not a foreign key: products can be deleted
    while their movement history must remain.
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.Index("ix_movements_product_timestamp", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user_id = db.Column(db.Integer, nullable=True)
    user_name = db.Column(db.String(255), nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    client_info = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Movement id={self.id} type={self.type} product_id={self.product_id} quantity={self.quantity}>"

    def to_record(self) -> dict:
        return row_to_domain("movements", self)

    def to_dict(self) -> dict:
        return jsonable(self.to_record())
