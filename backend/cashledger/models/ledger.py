from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from cashledger.errors import InvalidStateError, ValidationError
from cashledger.money_utils import (
    money_json,
    quantity_json,
    rate_json,
    round_money,
    round_quantity,
    to_decimal,
)
from cashledger.time_utils import to_utc_z


class TransactionType:
    CASH_SESSION_OPENING = "CASH_SESSION_OPENING"
    CASH_SESSION_DEPOSIT = "CASH_SESSION_DEPOSIT"
    CASH_SESSION_WITHDRAWAL = "CASH_SESSION_WITHDRAWAL"
    SALE = "SALE"
    SALE_RETURN = "SALE_RETURN"
    PURCHASE = "PURCHASE"
    PURCHASE_RETURN = "PURCHASE_RETURN"
    PAYMENT_IN = "PAYMENT_IN"
    PAYMENT_OUT = "PAYMENT_OUT"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    OPERATING_EXPENSE = "OPERATING_EXPENSE"

    ALL = (
        CASH_SESSION_OPENING, CASH_SESSION_DEPOSIT, CASH_SESSION_WITHDRAWAL,
        SALE, SALE_RETURN, PURCHASE, PURCHASE_RETURN, PAYMENT_IN, PAYMENT_OUT,
        ADJUSTMENT_IN, ADJUSTMENT_OUT, TRANSFER_IN, TRANSFER_OUT, OPERATING_EXPENSE,
    )


class TransactionStatus:
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"

    ALL = (DRAFT, CONFIRMED, PARTIALLY_RECEIVED, RECEIVED, CANCELLED)


class PaymentMethod:
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    TRANSFER = "TRANSFER"
    CHECK = "CHECK"
    CREDIT = "CREDIT"
    INTERNAL_CREDIT = "INTERNAL_CREDIT"
    MIXED = "MIXED"

    ALL = (CASH, CREDIT_CARD, DEBIT_CARD, TRANSFER, CHECK, CREDIT, INTERNAL_CREDIT, MIXED)


# Columns frozen once a transaction is CONFIRMED
IMMUTABLE_MONEY_FIELDS = ("subtotal", "tax_amount", "discount_amount", "total")


class LedgerTransaction(db.Model):
    """
    Append-only record of one money or inventory event.

    WHY: Balances (company cash, drawer cash, stock) are never stored; they are
    derived from CONFIRMED transactions. Corrections are new offsetting
    transactions, never updates.

    INVARIANTS:
    - total == subtotal + tax_amount - discount_amount (set at construction)
    - money columns are frozen once status is CONFIRMED
    - at most one CASH_SESSION_OPENING per cash session (partial unique index)
    """
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_type", "document_number", name="uq_ledger_tx_type_document"),
        db.Index(
            "uq_ledger_tx_one_opening_per_session",
            "cash_session_id",
            unique=True,
            sqlite_where=db.text("transaction_type = 'CASH_SESSION_OPENING'"),
            postgresql_where=db.text("transaction_type = 'CASH_SESSION_OPENING'"),
        ),
        db.Index("ix_ledger_tx_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False, index=True)
    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False, default=TransactionStatus.CONFIRMED, index=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=True, index=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(24), nullable=True, index=True)
    bank_account_key = db.Column(db.String(64), nullable=True)
    amount_paid = db.Column(db.Numeric(15, 2), nullable=True)
    change_amount = db.Column(db.Numeric(15, 2), nullable=True)

    related_transaction_id = db.Column(db.Integer, db.ForeignKey("ledger_transactions.id"), nullable=True, index=True)
    external_reference = db.Column(db.String(128), nullable=True)
    storage_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # "metadata" is reserved on declarative classes
    extra_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    cash_session = db.relationship("CashSession", backref=db.backref("transactions", lazy=True))
    related_transaction = db.relationship("LedgerTransaction", remote_side=[id])
    lines = db.relationship(
        "TransactionLine",
        backref="transaction",
        lazy=True,
        order_by="TransactionLine.line_number",
        cascade="all, delete-orphan",
    )

    def __init__(self, **kwargs):
        requested_total = kwargs.pop("total", None)
        super().__init__(**kwargs)

        self.subtotal = round_money(self.subtotal)
        self.tax_amount = round_money(self.tax_amount)
        self.discount_amount = round_money(self.discount_amount)
        self.total = round_money(self.subtotal + self.tax_amount - self.discount_amount)

        if requested_total is not None and round_money(requested_total) != self.total:
            raise ValidationError(
                "Transaction total must equal subtotal + tax - discount",
                [f"total {round_money(requested_total)} != {self.total}"],
            )

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "transaction_type": self.transaction_type,
            "status": self.status,
            "company_id": self.company_id,
            "branch_id": self.branch_id,
            "point_of_sale_id": self.point_of_sale_id,
            "cash_session_id": self.cash_session_id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "subtotal": money_json(self.subtotal),
            "tax_amount": money_json(self.tax_amount),
            "discount_amount": money_json(self.discount_amount),
            "total": money_json(self.total),
            "payment_method": self.payment_method,
            "bank_account_key": self.bank_account_key,
            "amount_paid": money_json(self.amount_paid),
            "change_amount": money_json(self.change_amount),
            "related_transaction_id": self.related_transaction_id,
            "external_reference": self.external_reference,
            "storage_id": self.storage_id,
            "notes": self.notes,
            "metadata": self.extra_metadata or {},
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


@event.listens_for(LedgerTransaction, "before_update")
def _freeze_confirmed_amounts(mapper, connection, target):
    state = inspect(target)
    status_history = state.attrs.status.history
    previous_status = status_history.deleted[0] if status_history.deleted else target.status
    if previous_status != TransactionStatus.CONFIRMED:
        return
    changed = [name for name in IMMUTABLE_MONEY_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise InvalidStateError(
            f"Confirmed transaction {target.id} is immutable ({', '.join(changed)})",
            status=previous_status,
        )


class TransactionLine(db.Model):
    """
    One product variant movement of a SALE/PURCHASE-type transaction.

    quantity_in_base is quantity x unit_conversion_factor; readers go through
    resolved_quantity_in_base() so a missing value is recomputed.
    """
    __tablename__ = "transaction_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("ledger_transactions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False, default=1)

    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)
    product_sku = db.Column(db.String(64), nullable=True)
    variant_name = db.Column(db.String(255), nullable=True)
    unit_of_measure = db.Column(db.String(16), nullable=True)

    quantity = db.Column(db.Numeric(15, 4), nullable=False)
    quantity_in_base = db.Column(db.Numeric(15, 4), nullable=True)
    unit_conversion_factor = db.Column(db.Numeric(15, 6), nullable=True)

    unit_cost = db.Column(db.Numeric(15, 2), nullable=True)
    unit_price = db.Column(db.Numeric(15, 2), nullable=True)

    discount_percentage = db.Column(db.Numeric(9, 4), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    tax_id = db.Column(db.Integer, db.ForeignKey("taxes.id"), nullable=True)
    tax_rate = db.Column(db.Numeric(9, 4), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)  # quantity x unit_price
    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)  # subtotal - discount + tax

    notes = db.Column(db.Text, nullable=True)

    def resolved_quantity_in_base(self):
        cached = to_decimal(self.quantity_in_base)
        if cached is not None:
            return round_quantity(cached)
        factor = to_decimal(self.unit_conversion_factor)
        if factor is None or factor <= 0:
            factor = 1
        return round_quantity(round_quantity(self.quantity) * factor)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "line_number": self.line_number,
            "product_variant_id": self.product_variant_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "variant_name": self.variant_name,
            "unit_of_measure": self.unit_of_measure,
            "quantity": quantity_json(self.quantity),
            "quantity_in_base": quantity_json(self.resolved_quantity_in_base()),
            "unit_conversion_factor": quantity_json(self.unit_conversion_factor),
            "unit_cost": money_json(self.unit_cost),
            "unit_price": money_json(self.unit_price),
            "discount_percentage": rate_json(self.discount_percentage),
            "discount_amount": money_json(self.discount_amount),
            "tax_id": self.tax_id,
            "tax_rate": rate_json(self.tax_rate),
            "tax_amount": money_json(self.tax_amount),
            "subtotal": money_json(self.subtotal),
            "total": money_json(self.total),
            "notes": self.notes,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document counters.

    WHY: Document numbers (CSO-, ICS-, RCS-, VTA-, PIE-, QPY) must never
    collide under concurrent postings, which timestamps cannot guarantee.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class LedgerEvent(db.Model):
    """Append-only audit trail, written in the same unit of work as the event it records."""
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_session_occurred", "cash_session_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. cash_session.opened, ledger.sale_posted
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    point_of_sale_id = db.Column(db.Integer, db.ForeignKey("points_of_sale.id"), nullable=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True)
    ledger_transaction_id = db.Column(db.Integer, db.ForeignKey("ledger_transactions.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "point_of_sale_id": self.point_of_sale_id,
            "cash_session_id": self.cash_session_id,
            "ledger_transaction_id": self.ledger_transaction_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
