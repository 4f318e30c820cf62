# Overview: Ledger reader; derives balances from confirmed transactions and serves transaction queries.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import (
    CashSession,
    LedgerTransaction,
    PaymentMethod,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from cashledger.errors import MissingCompanyError, NotFoundError, ValidationError
from cashledger.money_utils import round_money, round_quantity


"""
Ledger invariants (authoritative)

- Balances are never stored. Every read sums CONFIRMED transactions through a
  fixed direction table, inside one SELECT, so a read running next to an
  in-flight posting sees it entirely or not at all.
- Company cash ("cash", code CASH_ACCOUNT_CODE) counts movements made outside
  any drawer plus the transfers between the books and a drawer.
- Drawer cash ("cash_drawer") counts what one session should physically hold.
- Inventory ("inventory") sums line quantities in the base unit, recomputed
  from quantity x factor whenever the cached value is missing.
"""

ACCOUNT_CASH = "cash"
ACCOUNT_CASH_DRAWER = "cash_drawer"
ACCOUNT_INVENTORY = "inventory"

T = TransactionType

# Movements made outside a drawer (no cash session) paid in cash
CASH_DIRECTIONS = {
    T.SALE: 1,
    T.PAYMENT_IN: 1,
    T.PURCHASE_RETURN: 1,
    T.SALE_RETURN: -1,
    T.PURCHASE: -1,
    T.PAYMENT_OUT: -1,
    T.OPERATING_EXPENSE: -1,
}

# Books <-> drawer transfers, seen from the company cash account
DRAWER_TRANSFER_DIRECTIONS = {
    T.CASH_SESSION_OPENING: -1,
    T.CASH_SESSION_DEPOSIT: -1,
    T.CASH_SESSION_WITHDRAWAL: 1,
}

# Drawer transfers seen from the drawer
DRAWER_DIRECTIONS = {
    T.CASH_SESSION_OPENING: 1,
    T.CASH_SESSION_DEPOSIT: 1,
    T.CASH_SESSION_WITHDRAWAL: -1,
}

# Customer/supplier flows that only reach the drawer when paid in cash
DRAWER_TENDER_DIRECTIONS = {
    T.SALE: 1,
    T.PAYMENT_IN: 1,
    T.SALE_RETURN: -1,
    T.PAYMENT_OUT: -1,
    T.OPERATING_EXPENSE: -1,
}

INVENTORY_DIRECTIONS = {
    T.PURCHASE: 1,
    T.SALE_RETURN: 1,
    T.ADJUSTMENT_IN: 1,
    T.TRANSFER_IN: 1,
    T.SALE: -1,
    T.PURCHASE_RETURN: -1,
    T.ADJUSTMENT_OUT: -1,
    T.TRANSFER_OUT: -1,
}

TENDER_KEYS = {
    PaymentMethod.DEBIT_CARD: "debit_card",
    PaymentMethod.CREDIT_CARD: "credit_card",
    PaymentMethod.TRANSFER: "transfer",
    PaymentMethod.CHECK: "check",
}


def _signed(amount, directions: dict[str, int], extra_condition=None):
    """CASE expression giving +amount / -amount per transaction type."""
    whens = []
    for tx_type, sign in directions.items():
        condition = LedgerTransaction.transaction_type == tx_type
        if extra_condition is not None:
            condition = condition & extra_condition
        whens.append((condition, amount if sign > 0 else -amount))
    return case(*whens, else_=0)


def _sum(expression, *filters) -> Decimal:
    value = (
        db.session.query(func.coalesce(func.sum(expression), 0))
        .select_from(LedgerTransaction)
        .filter(LedgerTransaction.status == TransactionStatus.CONFIRMED, *filters)
        .scalar()
    )
    return round_money(value)


def _normalize_account(account_code: str) -> str:
    code = (account_code or "").strip()
    if code in (ACCOUNT_CASH, current_app.config.get("CASH_ACCOUNT_CODE")):
        return ACCOUNT_CASH
    if code in (ACCOUNT_CASH_DRAWER, ACCOUNT_INVENTORY):
        return code
    raise ValidationError(f"Unknown account: {account_code}")


def company_cash_balance(company_id: int | None) -> Decimal:
    if company_id is None:
        raise MissingCompanyError()

    outside_drawer = LedgerTransaction.cash_session_id.is_(None) & (
        LedgerTransaction.payment_method.is_(None)
        | (LedgerTransaction.payment_method == PaymentMethod.CASH)
    )
    expression = (
        _signed(LedgerTransaction.total, CASH_DIRECTIONS, outside_drawer)
        + _signed(LedgerTransaction.total, DRAWER_TRANSFER_DIRECTIONS)
    )
    return _sum(expression, LedgerTransaction.company_id == company_id)


def drawer_cash_balance(cash_session_id: int | None) -> Decimal:
    if cash_session_id is None:
        raise ValidationError("cash_session_id is required for the cash_drawer account")

    expression = (
        _signed(LedgerTransaction.total, DRAWER_DIRECTIONS)
        + _signed(
            LedgerTransaction.total,
            DRAWER_TENDER_DIRECTIONS,
            LedgerTransaction.payment_method == PaymentMethod.CASH,
        )
    )
    return _sum(expression, LedgerTransaction.cash_session_id == cash_session_id)


def inventory_balance(
    *,
    product_variant_id: int | None = None,
    branch_id: int | None = None,
    company_id: int | None = None,
) -> Decimal:
    quantity_in_base = func.coalesce(
        TransactionLine.quantity_in_base,
        TransactionLine.quantity * func.coalesce(TransactionLine.unit_conversion_factor, 1),
    )
    q = (
        db.session.query(func.coalesce(func.sum(_signed(quantity_in_base, INVENTORY_DIRECTIONS)), 0))
        .select_from(TransactionLine)
        .join(LedgerTransaction, TransactionLine.transaction_id == LedgerTransaction.id)
        .filter(LedgerTransaction.status == TransactionStatus.CONFIRMED)
    )
    if product_variant_id is not None:
        q = q.filter(TransactionLine.product_variant_id == product_variant_id)
    if branch_id is not None:
        q = q.filter(LedgerTransaction.branch_id == branch_id)
    if company_id is not None:
        q = q.filter(LedgerTransaction.company_id == company_id)
    return round_quantity(q.scalar())


def compute_account_balance(
    account_code: str,
    *,
    company_id: int | None = None,
    cash_session_id: int | None = None,
    product_variant_id: int | None = None,
    branch_id: int | None = None,
) -> Decimal:
    """
    Derive the balance of an account from CONFIRMED transactions.

    Pure read. No transactions means zero, not an error. Money accounts are
    rounded to 2 places, inventory to 4.
    """
    account = _normalize_account(account_code)
    if account == ACCOUNT_CASH:
        return company_cash_balance(company_id)
    if account == ACCOUNT_CASH_DRAWER:
        return drawer_cash_balance(cash_session_id)
    return inventory_balance(
        product_variant_id=product_variant_id,
        branch_id=branch_id,
        company_id=company_id,
    )


def tender_breakdown(cash_session: CashSession, expected_cash: Decimal | None = None) -> dict[str, Decimal]:
    """
    Expected amount per tender for one session.

    Cash is the drawer balance; card, transfer and check totals are summed
    from the session's confirmed movements; anything else lands in "other".
    """
    if expected_cash is None:
        expected_cash = drawer_cash_balance(cash_session.id)

    breakdown = {
        "cash": round_money(expected_cash),
        "debit_card": round_money(0),
        "credit_card": round_money(0),
        "transfer": round_money(0),
        "check": round_money(0),
        "other": round_money(0),
    }

    rows = (
        db.session.query(LedgerTransaction.payment_method, LedgerTransaction.transaction_type, LedgerTransaction.total)
        .filter(
            LedgerTransaction.cash_session_id == cash_session.id,
            LedgerTransaction.status == TransactionStatus.CONFIRMED,
            LedgerTransaction.payment_method.isnot(None),
            LedgerTransaction.payment_method != PaymentMethod.CASH,
        )
        .all()
    )
    for method, tx_type, total in rows:
        sign = DRAWER_TENDER_DIRECTIONS.get(tx_type)
        if sign is None:
            continue
        key = TENDER_KEYS.get(method, "other")
        breakdown[key] = round_money(breakdown[key] + sign * round_money(total))

    return breakdown


def get_transaction(transaction_id: int) -> LedgerTransaction:
    tx = db.session.get(LedgerTransaction, transaction_id)
    if not tx:
        raise NotFoundError("transaction")
    return tx


def list_transactions(
    *,
    cash_session_id: int | None = None,
    company_id: int | None = None,
    transaction_type: str | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[LedgerTransaction]:
    if transaction_type and transaction_type not in TransactionType.ALL:
        raise ValidationError(f"Unknown transaction_type: {transaction_type}")
    if status and status not in TransactionStatus.ALL:
        raise ValidationError(f"Unknown status: {status}")

    q = LedgerTransaction.query
    if cash_session_id is not None:
        q = q.filter(LedgerTransaction.cash_session_id == cash_session_id)
    if company_id is not None:
        q = q.filter(LedgerTransaction.company_id == company_id)
    if transaction_type:
        q = q.filter(LedgerTransaction.transaction_type == transaction_type)
    if status:
        q = q.filter(LedgerTransaction.status == status)

    limit = max(1, min(limit, 500))
    return q.order_by(LedgerTransaction.created_at.asc(), LedgerTransaction.id.asc()).limit(limit).all()
