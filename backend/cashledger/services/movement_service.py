# Overview: Money-movement recorder; validated, atomic cash postings against an open session.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    CashSession,
    CashSessionStatus,
    Company,
    LedgerTransaction,
    PaymentMethod,
    PointOfSale,
    TransactionStatus,
    TransactionType,
    User,
)
from cashledger.errors import (
    InsufficientCashError,
    InvalidStateError,
    NoCashAvailableError,
    NotFoundError,
    SessionMismatchError,
    SessionStatusError,
    ValidationError,
)
from cashledger.money_utils import ZERO, money_json, round_money
from cashledger.time_utils import compact_timestamp, utcnow
from cashledger.validation import CashMovementInput, QuotaPaymentInput
from .accounting_service import get_recorder
from .audit_service import append_ledger_event
from .concurrency import atomic, lock_for_update
from .directory_service import get_point_of_sale, resolve_company_id, resolve_user
from .document_service import next_document_number, quota_payment_document_number
from .ledger_service import company_cash_balance, drawer_cash_balance


MOVEMENT_EVENTS = {
    TransactionType.CASH_SESSION_DEPOSIT: "cash_session.deposit_posted",
    TransactionType.CASH_SESSION_WITHDRAWAL: "cash_session.withdrawal_posted",
}


@dataclass
class MovementContext:
    user: User
    point_of_sale: PointOfSale
    cash_session: CashSession


def resolve_movement_context(user_name: str, point_of_sale_id: int, cash_session_id: int) -> MovementContext:
    """
    Common preconditions of every movement, checked in order:

    1. user, point of sale and cash session exist (NotFoundError)
    2. the session is OPEN (SessionStatusError)
    3. the session belongs to the point of sale (SessionMismatchError)

    The session row is locked for the rest of the unit of work.
    """
    user = resolve_user(user_name)
    pos = get_point_of_sale(point_of_sale_id)
    session = lock_for_update(CashSession.query.filter_by(id=cash_session_id)).first()
    if not session:
        raise NotFoundError("cashSession")

    if session.status != CashSessionStatus.OPEN:
        raise SessionStatusError(session.status)
    if session.point_of_sale_id and session.point_of_sale_id != pos.id:
        raise SessionMismatchError()

    return MovementContext(user=user, point_of_sale=pos, cash_session=session)


def refresh_expected_amount(session: CashSession) -> Decimal:
    session.expected_amount = drawer_cash_balance(session.id)
    return session.expected_amount


def _lock_company(company_id: int | None) -> None:
    if company_id is not None:
        lock_for_update(Company.query.filter_by(id=company_id)).first()


def _post_cash_movement(
    ctx: MovementContext,
    transaction_type: str,
    amount: Decimal,
    reason: str | None,
    company_id: int | None,
) -> LedgerTransaction:
    pos = ctx.point_of_sale
    now = utcnow()
    tx = LedgerTransaction(
        document_number=next_document_number(transaction_type),
        transaction_type=transaction_type,
        status=TransactionStatus.CONFIRMED,
        company_id=company_id,
        branch_id=pos.branch_id,
        point_of_sale_id=pos.id,
        cash_session_id=ctx.cash_session.id,
        user_id=ctx.user.id,
        subtotal=amount,
        tax_amount=ZERO,
        discount_amount=ZERO,
        payment_method=PaymentMethod.CASH,
        notes=reason,
        extra_metadata={
            "cashSessionId": ctx.cash_session.id,
            "pointOfSaleId": pos.id,
            "pointOfSaleName": pos.name,
            "reason": reason,
            "postedByUserName": ctx.user.user_name,
            "postedAt": compact_timestamp(now),
        },
        created_at=now,
    )
    db.session.add(tx)
    db.session.flush()

    refresh_expected_amount(ctx.cash_session)

    append_ledger_event(
        event_type=MOVEMENT_EVENTS[transaction_type],
        entity_type="ledger_transaction",
        entity_id=tx.id,
        company_id=company_id,
        actor_user_id=ctx.user.id,
        point_of_sale_id=pos.id,
        cash_session_id=ctx.cash_session.id,
        ledger_transaction_id=tx.id,
        occurred_at=now,
        note=reason,
        payload={"amount": money_json(amount)},
    )
    return tx


def post_deposit(data: CashMovementInput) -> tuple[LedgerTransaction, CashSession]:
    """
    Move cash from the company cash account into an open drawer.

    WHY: Cash cannot be deposited into a drawer unless the books show it.
    The company row is locked so a concurrent withdrawal or deposit cannot
    consume the same balance between the check and the insert.

    Raises:
        MissingCompanyError: the point of sale has no company
        NoCashAvailableError: company cash balance <= 0
        InsufficientCashError: amount > company cash balance
    """
    amount = round_money(data.amount)
    if amount <= ZERO:
        raise ValidationError("amount must be greater than 0")

    with atomic():
        ctx = resolve_movement_context(data.user_name, data.point_of_sale_id, data.cash_session_id)
        company_id = resolve_company_id(ctx.point_of_sale)
        _lock_company(company_id)

        account_code = current_app.config["CASH_ACCOUNT_CODE"]
        available = company_cash_balance(company_id)
        if available <= ZERO:
            raise NoCashAvailableError(float(available), account_code)
        if amount > available:
            raise InsufficientCashError(float(available), account_code)

        tx = _post_cash_movement(ctx, TransactionType.CASH_SESSION_DEPOSIT, amount, data.reason, company_id)

    return tx, ctx.cash_session


def post_withdrawal(data: CashMovementInput) -> tuple[LedgerTransaction, CashSession]:
    """
    Remove cash from an open drawer back to the company cash account.

    No upper bound against the drawer or company balance is enforced here;
    the drawer may go negative until the session is reconciled at close.
    """
    amount = round_money(data.amount)
    if amount <= ZERO:
        raise ValidationError("amount must be greater than 0")

    with atomic():
        ctx = resolve_movement_context(data.user_name, data.point_of_sale_id, data.cash_session_id)
        company_id = ctx.point_of_sale.company_id
        _lock_company(company_id)

        tx = _post_cash_movement(ctx, TransactionType.CASH_SESSION_WITHDRAWAL, amount, data.reason, company_id)

    return tx, ctx.cash_session


def record_company_receipt(
    *,
    company_id: int,
    amount,
    user_id: int | None = None,
    notes: str | None = None,
) -> LedgerTransaction:
    """
    Cash received by the company outside any drawer (PAYMENT_IN, PIE-).

    This is how the company cash account gets funded before drawers can
    take deposits from it.
    """
    amount = round_money(amount)
    if amount <= ZERO:
        raise ValidationError("amount must be greater than 0")

    with atomic():
        company = lock_for_update(Company.query.filter_by(id=company_id)).first()
        if not company:
            raise NotFoundError("company")

        now = utcnow()
        tx = LedgerTransaction(
            document_number=next_document_number(TransactionType.PAYMENT_IN),
            transaction_type=TransactionType.PAYMENT_IN,
            status=TransactionStatus.CONFIRMED,
            company_id=company.id,
            user_id=user_id,
            subtotal=amount,
            tax_amount=ZERO,
            discount_amount=ZERO,
            payment_method=PaymentMethod.CASH,
            notes=notes,
            created_at=now,
        )
        db.session.add(tx)
        db.session.flush()

        append_ledger_event(
            event_type="ledger.company_receipt_posted",
            entity_type="ledger_transaction",
            entity_id=tx.id,
            company_id=company.id,
            actor_user_id=user_id,
            ledger_transaction_id=tx.id,
            occurred_at=now,
            note=notes,
            payload={"amount": money_json(amount)},
        )

    return tx


def pay_quota(data: QuotaPaymentInput) -> tuple[list[LedgerTransaction], CashSession]:
    """
    Settle an installment of a credit sale with one PAYMENT_IN per payment line.

    Internal credit cannot settle a quota; that is rejected before anything
    is read or written. Each payment is handed to the accounting recorder in
    the same unit of work, so a recorder failure rolls every payment back.
    """
    if not data.payments:
        raise ValidationError("At least one payment is required")
    if any(p.payment_method == PaymentMethod.INTERNAL_CREDIT for p in data.payments):
        raise ValidationError("A quota cannot be paid with internal credit")
    if any(round_money(p.amount) <= ZERO for p in data.payments):
        raise ValidationError("Every payment amount must be greater than 0")

    with atomic():
        original = db.session.get(LedgerTransaction, data.original_transaction_id)
        if not original:
            raise NotFoundError("transaction", "Original transaction not found")
        if original.status == TransactionStatus.CANCELLED:
            raise InvalidStateError("Cannot pay a quota of a cancelled transaction", status=original.status)

        session = lock_for_update(CashSession.query.filter_by(id=data.cash_session_id)).first()
        if not session:
            raise NotFoundError("cashSession")
        if session.status != CashSessionStatus.OPEN:
            raise SessionStatusError(session.status)

        pos = db.session.get(PointOfSale, session.point_of_sale_id)
        if not pos:
            raise NotFoundError("pointOfSale")
        user = db.session.get(User, session.opened_by_id)
        if not user:
            raise NotFoundError("user")

        recorder = get_recorder()
        payments = []
        for payment in data.payments:
            amount = round_money(payment.amount)
            tx = LedgerTransaction(
                document_number=quota_payment_document_number(original.document_number),
                transaction_type=TransactionType.PAYMENT_IN,
                status=TransactionStatus.CONFIRMED,
                company_id=pos.company_id,
                branch_id=pos.branch_id,
                point_of_sale_id=pos.id,
                cash_session_id=session.id,
                customer_id=original.customer_id,
                user_id=user.id,
                subtotal=amount,
                tax_amount=ZERO,
                discount_amount=ZERO,
                payment_method=payment.payment_method,
                bank_account_key=payment.bank_account_key,
                related_transaction_id=original.id,
                extra_metadata={
                    "paidQuotaId": data.quota_id,
                    "originalTransactionId": original.id,
                    "bankAccountId": payment.bank_account_key,
                },
                created_at=utcnow(),
            )
            db.session.add(tx)
            db.session.flush()

            recorder(tx, payment.bank_account_key)

            append_ledger_event(
                event_type="ledger.quota_payment_posted",
                entity_type="ledger_transaction",
                entity_id=tx.id,
                company_id=tx.company_id,
                actor_user_id=user.id,
                point_of_sale_id=pos.id,
                cash_session_id=session.id,
                ledger_transaction_id=tx.id,
                payload={"quota_id": data.quota_id, "amount": money_json(amount)},
            )
            payments.append(tx)

        refresh_expected_amount(session)

    current_app.logger.info(
        "Quota %s of transaction %s paid with %d payment(s) in cash session %s",
        data.quota_id, data.original_transaction_id, len(payments), data.cash_session_id,
    )
    return payments, session
