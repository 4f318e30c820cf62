from __future__ import annotations

from ..extensions import db
from cashledger.money_utils import rate_json, quantity_json, money_json
from cashledger.time_utils import to_utc_z

class Tax(db.Model):
    """Tax definition (e.g. VAT 19%). Rates are percentages with up to 4 decimals."""
    __tablename__ = "taxes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    code = db.Column(db.String(20), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    rate = db.Column(db.Numeric(9, 4), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "code": self.code,
            "name": self.name,
            "rate": rate_json(self.rate),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class Product(db.Model):
    """
    Product master data.

    tax_ids lists the taxes applied by default to every variant of the product.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    tax_ids = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_ids": list(self.tax_ids or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }

class ProductVariant(db.Model):
    """
    Sellable variant of a product.

    unit_conversion_factor converts the selling unit into the base unit used
    for stock accounting (e.g. a box of 12 -> 12). tax_ids, when set,
    overrides the product's taxes.
    """
    __tablename__ = "product_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    attribute_values = db.Column(db.JSON, nullable=True)

    base_price = db.Column(db.Numeric(15, 2), nullable=True)
    unit_symbol = db.Column(db.String(16), nullable=True)
    unit_conversion_factor = db.Column(db.Numeric(15, 6), nullable=True)

    tax_ids = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))

    @property
    def display_name(self) -> str | None:
        values = [str(v) for v in (self.attribute_values or {}).values() if v]
        return ", ".join(values) if values else None

    def configured_tax_ids(self) -> list[int]:
        if self.tax_ids:
            return list(self.tax_ids)
        if self.product and self.product.tax_ids:
            return list(self.product.tax_ids)
        return []

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "attribute_values": self.attribute_values or {},
            "base_price": money_json(self.base_price),
            "unit_symbol": self.unit_symbol,
            "unit_conversion_factor": quantity_json(self.unit_conversion_factor),
            "tax_ids": list(self.tax_ids or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
