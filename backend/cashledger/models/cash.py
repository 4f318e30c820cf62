from __future__ import annotations

from ..extensions import db
from cashledger.money_utils import money_json
from cashledger.time_utils import to_utc_z


class CashSessionStatus:
    OPEN = "OPEN"
    CLOSED = "CLOSED"

    ALL = (OPEN, CLOSED)


class CashSession(db.Model):
    """
    Cash drawer session of one point of sale.

    WHY: Cashier accountability. A session has an opening float, receives
    every cash movement of the shift and is reconciled (counted vs expected)
    when it closes.

    LIFECYCLE:
    - OPEN: drawer in use, movements can be posted
    - CLOSED: counted and reconciled; terminal, never reopened

    CONCURRENCY: a partial unique index allows at most one OPEN session per
    point of sale, so two racing opens cannot both commit.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_one_open_per_pos",
            "point_of_sale_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=False, index=True)
    opened_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    closed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=CashSessionStatus.OPEN, index=True)

    opening_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    expected_amount = db.Column(db.Numeric(15, 2), nullable=True)  # refreshed on every movement
    closing_amount = db.Column(db.Numeric(15, 2), nullable=True)  # counted cash
    difference = db.Column(db.Numeric(15, 2), nullable=True)  # closing - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    closing_details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    point_of_sale = db.relationship("PointOfSale", backref=db.backref("cash_sessions", lazy=True))
    opened_by = db.relationship("User", foreign_keys=[opened_by_id])
    closed_by = db.relationship("User", foreign_keys=[closed_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "point_of_sale_id": self.point_of_sale_id,
            "opened_by_id": self.opened_by_id,
            "closed_by_id": self.closed_by_id,
            "status": self.status,
            "opening_amount": money_json(self.opening_amount),
            "expected_amount": money_json(self.expected_amount),
            "closing_amount": money_json(self.closing_amount),
            "difference": money_json(self.difference),
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "notes": self.notes,
            "closing_details": self.closing_details,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
