from __future__ import annotations

from ..extensions import db
from cashledger.time_utils import to_utc_z

class Company(db.Model):
    """
    Company owning branches, registers and the cash-on-hand account.

    WHY: The cash account balance that guards deposits is scoped per company.
    The company is resolved once from the register and then passed explicitly.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(32), nullable=True, unique=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

class Branch(db.Model):
    """Physical branch of a company. Registers and ledger movements hang off it."""
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_branches_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("branches", lazy=True))

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }

class PointOfSale(db.Model):
    """
    Physical POS register/terminal.

    DESIGN: Registers are persistent (not deleted when inactive).
    Each register can have many cash sessions over time, at most one OPEN.
    """
    __tablename__ = "points_of_sale"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    device_id = db.Column(db.String(100), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("points_of_sale", lazy=True))

    @property
    def company_id(self) -> int | None:
        return self.branch.company_id if self.branch else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "device_id": self.device_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
