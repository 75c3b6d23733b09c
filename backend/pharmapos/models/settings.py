from __future__ import annotations

from ..extensions import db
from ..fieldmap import row_to_domain


class PharmacyConfig(db.Model):
    """
    Singleton pharmacy identity used on receipts and reports.

    The only row has id 1. It is created by `flask system init-db` (or the
    initial migration) and by the first update; reads never insert it.
    """
    __tablename__ = "pharmacy_config"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=False, default="")
    phone = db.Column(db.String(64), nullable=False, default="")
    email = db.Column(db.String(255), nullable=False, default="")
    nit = db.Column(db.String(64), nullable=False, default="")
    socials = db.Column(db.String(255), nullable=False, default="")

    def to_record(self) -> dict:
        return row_to_domain("config", self)

    def to_dict(self) -> dict:
        return self.to_record()
