# Overview: Cash session state machine (OPEN -> CLOSED), opening float and closing reconciliation.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    CashSession,
    CashSessionStatus,
    LedgerTransaction,
    PaymentMethod,
    PointOfSale,
    TransactionStatus,
    TransactionType,
    User,
)
from cashledger.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SessionMismatchError,
    SessionStatusError,
    UserMismatchError,
    ValidationError,
)
from cashledger.money_utils import ZERO, money_json, round_money
from cashledger.time_utils import compact_timestamp, to_utc_z, utcnow
from cashledger.validation import CloseSessionInput, OpeningInput, OpenSessionInput
from .audit_service import append_ledger_event
from .concurrency import atomic, lock_for_update
from .directory_service import get_point_of_sale, resolve_user
from .document_service import next_document_number
from .ledger_service import drawer_cash_balance, tender_breakdown


OPEN_CONFLICT = "Point of sale already has an open cash session"
OPENING_CONFLICT = "Cash session already has an opening transaction"


@dataclass
class ClosingResult:
    session: CashSession
    actual: dict[str, Decimal]
    expected: dict[str, Decimal]
    difference: dict[str, Decimal]

    def closing_json(self) -> dict:
        return {
            "actual": _tenders_json(self.actual),
            "expected": _tenders_json(self.expected),
            "difference": _tenders_json(self.difference),
        }


def _tenders_json(values: dict[str, Decimal]) -> dict:
    return {key: money_json(value) for key, value in values.items()}


def lock_session(cash_session_id: int) -> CashSession:
    session = lock_for_update(CashSession.query.filter_by(id=cash_session_id)).first()
    if not session:
        raise NotFoundError("cashSession")
    return session


def open_session(data: OpenSessionInput) -> tuple[CashSession, LedgerTransaction | None]:
    """
    Open a cash session on a point of sale.

    WHY: A session is the unit of cashier accountability. Only one session
    can be OPEN per point of sale; the register row is locked and a partial
    unique index backs the check, so racing opens cannot both commit.

    The session starts with opening_amount 0. When opening_amount is given,
    the opening transaction is posted in the same unit of work.

    Raises:
        NotFoundError: user or point of sale missing
        InvalidStateError: point of sale inactive
        ConflictError: point of sale already has an OPEN session
    """
    with atomic(conflict_message=OPEN_CONFLICT):
        user = resolve_user(data.user_name)
        pos = lock_for_update(PointOfSale.query.filter_by(id=data.point_of_sale_id)).first()
        if not pos:
            raise NotFoundError("pointOfSale")
        if not pos.is_active:
            raise InvalidStateError("Cannot open a cash session on an inactive point of sale")

        existing = CashSession.query.filter_by(
            point_of_sale_id=pos.id,
            status=CashSessionStatus.OPEN,
        ).first()
        if existing:
            raise ConflictError(OPEN_CONFLICT, details={"cash_session_id": existing.id})

        session = CashSession(
            point_of_sale_id=pos.id,
            opened_by_id=user.id,
            status=CashSessionStatus.OPEN,
            opening_amount=round_money(ZERO),
            expected_amount=None,
            opened_at=utcnow(),
        )
        db.session.add(session)
        db.session.flush()

        append_ledger_event(
            event_type="cash_session.opened",
            entity_type="cash_session",
            entity_id=session.id,
            company_id=pos.company_id,
            actor_user_id=user.id,
            point_of_sale_id=pos.id,
            cash_session_id=session.id,
            occurred_at=session.opened_at,
            note="Cash session opened",
        )

        opening_tx = None
        if data.opening_amount is not None:
            opening_tx = _post_opening(session, pos, user, data.opening_amount)

    current_app.logger.info(
        "Cash session %s opened on point of sale %s by %s",
        session.id, session.point_of_sale_id, data.user_name,
    )
    return session, opening_tx


def post_opening_transaction(data: OpeningInput) -> tuple[LedgerTransaction, CashSession]:
    """
    Record the opening float of a session. At most one per session.

    Checks run in order: session, status, point of sale, user, opener match,
    existing opening. The session row is locked so two concurrent calls
    serialize and the second sees the first opening.
    """
    with atomic(conflict_message=OPENING_CONFLICT):
        session = lock_session(data.cash_session_id)
        if session.status != CashSessionStatus.OPEN:
            raise InvalidStateError(
                f"Cash session must be OPEN to post an opening transaction (current status: {session.status})",
                status=session.status,
            )

        pos = db.session.get(PointOfSale, session.point_of_sale_id)
        if not pos:
            raise NotFoundError("pointOfSale")

        user = resolve_user(data.user_name)
        if session.opened_by_id != user.id:
            raise UserMismatchError()

        tx = _post_opening(session, pos, user, data.opening_amount)

    return tx, session


def _post_opening(session: CashSession, pos: PointOfSale, user: User, amount: Decimal) -> LedgerTransaction:
    amount = round_money(amount)
    if amount < ZERO:
        raise ValidationError("opening_amount must be >= 0")

    existing = LedgerTransaction.query.filter_by(
        cash_session_id=session.id,
        transaction_type=TransactionType.CASH_SESSION_OPENING,
    ).first()
    if existing:
        raise ConflictError(OPENING_CONFLICT, details={"transaction_id": existing.id})

    now = utcnow()
    tx = LedgerTransaction(
        document_number=next_document_number(TransactionType.CASH_SESSION_OPENING),
        transaction_type=TransactionType.CASH_SESSION_OPENING,
        status=TransactionStatus.CONFIRMED,
        company_id=pos.company_id,
        branch_id=pos.branch_id,
        point_of_sale_id=pos.id,
        cash_session_id=session.id,
        user_id=user.id,
        subtotal=amount,
        tax_amount=ZERO,
        discount_amount=ZERO,
        payment_method=PaymentMethod.CASH,
        extra_metadata={
            "cashSessionId": session.id,
            "cashSessionOpenedAt": to_utc_z(session.opened_at),
            "openingAmount": money_json(amount),
            "pointOfSaleId": pos.id,
            "pointOfSaleName": pos.name,
            "branchId": pos.branch_id,
            "openedByUserId": session.opened_by_id,
            "openedByUserName": user.user_name,
            "postedAt": compact_timestamp(now),
        },
        created_at=now,
    )
    db.session.add(tx)
    db.session.flush()

    session.opening_amount = amount
    session.expected_amount = drawer_cash_balance(session.id)

    append_ledger_event(
        event_type="cash_session.opening_posted",
        entity_type="ledger_transaction",
        entity_id=tx.id,
        company_id=tx.company_id,
        actor_user_id=user.id,
        point_of_sale_id=pos.id,
        cash_session_id=session.id,
        ledger_transaction_id=tx.id,
        occurred_at=now,
        payload={"amount": money_json(amount)},
    )
    return tx


def close_session(data: CloseSessionInput) -> ClosingResult:
    """
    Count the drawer and close the session. Terminal: never reopened.

    expected cash is the drawer balance of the session's confirmed movements;
    difference = counted - expected, both for cash and across every tender.
    """
    with atomic():
        user = resolve_user(data.user_name)
        pos = get_point_of_sale(data.point_of_sale_id)
        session = lock_session(data.cash_session_id)

        if session.status != CashSessionStatus.OPEN:
            raise SessionStatusError(session.status)
        if session.point_of_sale_id != pos.id:
            raise SessionMismatchError()

        actual = {key: round_money(value) for key, value in data.tenders().items()}
        expected_cash = drawer_cash_balance(session.id)
        expected = tender_breakdown(session, expected_cash)

        cash_difference = round_money(actual["cash"] - expected["cash"])
        total_difference = round_money(sum(actual.values()) - sum(expected.values()))
        difference = {"cash": cash_difference, "total": total_difference}

        notes = data.notes
        if (
            current_app.config.get("REQUIRE_CLOSING_NOTE_ON_DIFFERENCE")
            and abs(cash_difference) >= Decimal("0.01")
            and (not notes or len(notes) < 3)
        ):
            raise ValidationError("A note explaining the cash difference is required")

        now = utcnow()
        session.status = CashSessionStatus.CLOSED
        session.closed_by_id = user.id
        session.closed_at = now
        session.closing_amount = actual["cash"]
        session.expected_amount = expected_cash
        session.difference = cash_difference
        if notes:
            session.notes = "\n".join(part.strip() for part in (session.notes, notes) if part and part.strip())

        session.closing_details = {
            "countedByUserId": user.id,
            "countedByUserName": user.user_name,
            "countedAt": to_utc_z(now),
            "notes": notes,
            "actual": _tenders_json(actual),
            "expected": _tenders_json(expected),
            "difference": _tenders_json(difference),
        }

        append_ledger_event(
            event_type="cash_session.closed",
            entity_type="cash_session",
            entity_id=session.id,
            company_id=pos.company_id,
            actor_user_id=user.id,
            point_of_sale_id=pos.id,
            cash_session_id=session.id,
            occurred_at=now,
            note="Cash session closed",
            payload={"difference": _tenders_json(difference)},
        )

    current_app.logger.info(
        "Cash session %s closed by %s (expected %s, counted %s, difference %s)",
        session.id, data.user_name, expected_cash, actual["cash"], cash_difference,
    )
    return ClosingResult(session=session, actual=actual, expected=expected, difference=difference)


def get_session(cash_session_id: int) -> CashSession:
    session = db.session.get(CashSession, cash_session_id)
    if not session:
        raise NotFoundError("cashSession")
    return session


def get_open_session(point_of_sale_id: int) -> CashSession | None:
    return CashSession.query.filter_by(
        point_of_sale_id=point_of_sale_id,
        status=CashSessionStatus.OPEN,
    ).first()


def list_sessions(
    *,
    point_of_sale_id: int | None = None,
    status: str | None = None,
    limit: int = 50,
) -> list[CashSession]:
    if status and status not in CashSessionStatus.ALL:
        raise ValidationError(f"Unknown cash session status: {status}")

    q = CashSession.query
    if point_of_sale_id is not None:
        q = q.filter(CashSession.point_of_sale_id == point_of_sale_id)
    if status:
        q = q.filter(CashSession.status == status)

    limit = max(1, min(limit, 200))
    return q.order_by(CashSession.opened_at.desc(), CashSession.id.desc()).limit(limit).all()
