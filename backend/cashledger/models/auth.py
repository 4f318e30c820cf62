from __future__ import annotations

from ..extensions import db
from cashledger.time_utils import to_utc_z

class User(db.Model):
    """
    Cashier or back-office user.

    Authentication lives elsewhere; this core only resolves users by user_name
    to attribute sessions and ledger transactions.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_name = db.Column(db.String(64), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} user_name={self.user_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_name": self.user_name,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
