"""
Tests for the cash session lifecycle: open, opening float, close.

WHY: A drawer is only accountable if there is exactly one OPEN session per
point of sale, the opening float is posted once, and the closing count is
reconciled against what the ledger says the drawer should hold.
"""

from decimal import Decimal

import pytest

from cashledger.errors import (
    ConflictError,
    InsufficientCashError,
    InvalidStateError,
    NotFoundError,
    SessionMismatchError,
    SessionStatusError,
    UserMismatchError,
    ValidationError,
)
from cashledger.extensions import db
from cashledger.models import (
    CashSession,
    CashSessionStatus,
    LedgerEvent,
    LedgerTransaction,
    PaymentMethod,
    TransactionType,
)
from cashledger.services import cash_session_service, ledger_service, movement_service
from cashledger.validation import CashMovementInput, CloseSessionInput, OpeningInput, OpenSessionInput


def _close_input(session, pos, user_name="cashier1", actual_cash=0, notes=None, **tenders):
    payload = {
        "user_name": user_name,
        "point_of_sale_id": pos.id,
        "cash_session_id": session.id,
        "actual_cash": actual_cash,
        "notes": notes,
    }
    payload.update(tenders)
    return CloseSessionInput.from_payload(payload)


class TestOpenSession:

    def test_open_creates_open_session_with_zero_opening(self, app, pos, cashier):
        session, opening_tx = cash_session_service.open_session(
            OpenSessionInput(user_name="cashier1", point_of_sale_id=pos.id)
        )

        assert opening_tx is None
        stored = db.session.get(CashSession, session.id)
        assert stored.status == CashSessionStatus.OPEN
        assert stored.opening_amount == Decimal("0.00")
        assert stored.opened_by_id == cashier.id
        assert stored.closed_at is None
        assert LedgerEvent.query.filter_by(event_type="cash_session.opened", cash_session_id=session.id).count() == 1

    def test_second_open_on_same_pos_conflicts(self, app, pos, cashier, open_session):
        with pytest.raises(ConflictError) as excinfo:
            cash_session_service.open_session(OpenSessionInput(user_name="cashier1", point_of_sale_id=pos.id))

        assert excinfo.value.details["cash_session_id"] == open_session.id
        assert CashSession.query.filter_by(point_of_sale_id=pos.id).count() == 1

    def test_other_pos_can_open_in_parallel(self, app, pos, other_pos, cashier, open_session):
        session, _ = cash_session_service.open_session(
            OpenSessionInput(user_name="cashier1", point_of_sale_id=other_pos.id)
        )
        assert session.point_of_sale_id == other_pos.id

    def test_inactive_pos_cannot_open(self, app, db_session, pos, cashier):
        pos.is_active = False
        db_session.commit()

        with pytest.raises(InvalidStateError):
            cash_session_service.open_session(OpenSessionInput(user_name="cashier1", point_of_sale_id=pos.id))

    def test_unknown_user_is_not_found(self, app, pos):
        with pytest.raises(NotFoundError) as excinfo:
            cash_session_service.open_session(OpenSessionInput(user_name="ghost", point_of_sale_id=pos.id))
        assert excinfo.value.resource == "user"

    def test_unknown_pos_is_not_found(self, app, cashier):
        with pytest.raises(NotFoundError):
            cash_session_service.open_session(OpenSessionInput(user_name="cashier1", point_of_sale_id=987654))

    def test_open_with_amount_posts_opening_in_same_unit(self, app, pos, cashier, funded_cash):
        session, opening_tx = cash_session_service.open_session(
            OpenSessionInput(user_name="cashier1", point_of_sale_id=pos.id, opening_amount=Decimal("25000"))
        )

        assert opening_tx.transaction_type == TransactionType.CASH_SESSION_OPENING
        assert opening_tx.document_number == "CSO-00000001"
        stored = db.session.get(CashSession, session.id)
        assert stored.opening_amount == Decimal("25000.00")
        assert stored.expected_amount == Decimal("25000.00")


class TestOpeningTransaction:

    def test_opening_is_posted_once(self, app, pos, cashier, open_session):
        tx, session = cash_session_service.post_opening_transaction(
            OpeningInput(cash_session_id=open_session.id, user_name="cashier1", opening_amount=Decimal("50000"))
        )

        assert tx.payment_method == PaymentMethod.CASH
        assert tx.total == Decimal("50000.00")
        assert tx.cash_session_id == open_session.id
        assert tx.extra_metadata["openingAmount"] == 50000.0
        assert tx.extra_metadata["openedByUserName"] == "cashier1"
        assert session.opening_amount == Decimal("50000.00")

        with pytest.raises(ConflictError):
            cash_session_service.post_opening_transaction(
                OpeningInput(cash_session_id=open_session.id, user_name="cashier1", opening_amount=Decimal("50000"))
            )

        count = LedgerTransaction.query.filter_by(
            cash_session_id=open_session.id,
            transaction_type=TransactionType.CASH_SESSION_OPENING,
        ).count()
        assert count == 1

    def test_zero_opening_is_allowed(self, app, open_session):
        tx, _ = cash_session_service.post_opening_transaction(
            OpeningInput(cash_session_id=open_session.id, user_name="cashier1")
        )
        assert tx.total == Decimal("0.00")

    def test_opening_by_another_user_is_rejected(self, app, open_session, other_cashier):
        with pytest.raises(UserMismatchError):
            cash_session_service.post_opening_transaction(
                OpeningInput(cash_session_id=open_session.id, user_name="cashier2", opening_amount=Decimal("100"))
            )
        assert LedgerTransaction.query.count() == 0

    def test_opening_on_unknown_session(self, app, cashier):
        with pytest.raises(NotFoundError):
            cash_session_service.post_opening_transaction(
                OpeningInput(cash_session_id=123456, user_name="cashier1", opening_amount=Decimal("100"))
            )

    def test_opening_on_closed_session(self, app, pos, open_session):
        cash_session_service.close_session(_close_input(open_session, pos))

        with pytest.raises(InvalidStateError) as excinfo:
            cash_session_service.post_opening_transaction(
                OpeningInput(cash_session_id=open_session.id, user_name="cashier1", opening_amount=Decimal("100"))
            )
        assert excinfo.value.status == CashSessionStatus.CLOSED


class TestCloseSession:

    def test_full_cash_day_reconciles_to_zero(self, app, company, pos, cashier, funded_cash, open_session):
        cash_session_service.post_opening_transaction(
            OpeningInput(cash_session_id=open_session.id, user_name="cashier1", opening_amount=Decimal("50000"))
        )
        with pytest.raises(ConflictError):
            cash_session_service.post_opening_transaction(
                OpeningInput(cash_session_id=open_session.id, user_name="cashier1", opening_amount=Decimal("50000"))
            )

        movement = dict(user_name="cashier1", point_of_sale_id=pos.id, cash_session_id=open_session.id)
        _, session = movement_service.post_deposit(CashMovementInput(amount=Decimal("10000"), **movement))
        assert session.expected_amount == Decimal("60000.00")

        with pytest.raises(InsufficientCashError):
            movement_service.post_deposit(CashMovementInput(amount=Decimal("500000"), **movement))

        result = cash_session_service.close_session(_close_input(open_session, pos, actual_cash=60000))

        stored = db.session.get(CashSession, open_session.id)
        assert stored.status == CashSessionStatus.CLOSED
        assert stored.expected_amount == Decimal("60000.00")
        assert stored.closing_amount == Decimal("60000.00")
        assert stored.difference == Decimal("0.00")
        assert stored.closed_by_id == cashier.id
        assert stored.closed_at is not None
        assert result.difference == {"cash": Decimal("0.00"), "total": Decimal("0.00")}
        assert ledger_service.company_cash_balance(company.id) == Decimal("140000.00")

    def test_shortage_is_negative_difference(self, app, pos, funded_cash, open_session):
        cash_session_service.post_opening_transaction(
            OpeningInput(cash_session_id=open_session.id, user_name="cashier1", opening_amount=Decimal("1000"))
        )

        result = cash_session_service.close_session(
            _close_input(open_session, pos, actual_cash=950, voucher_debit_amount=200, notes="Missing coins")
        )

        assert result.difference["cash"] == Decimal("-50.00")
        assert result.difference["total"] == Decimal("150.00")
        details = db.session.get(CashSession, open_session.id).closing_details
        assert details["countedByUserName"] == "cashier1"
        assert details["actual"]["debit_card"] == 200.0
        assert details["expected"]["cash"] == 1000.0
        assert details["difference"]["cash"] == -50.0

    def test_notes_are_appended(self, app, db_session, pos, open_session):
        open_session.notes = "Opened late"
        db_session.commit()

        cash_session_service.close_session(_close_input(open_session, pos, notes="All good"))

        assert db.session.get(CashSession, open_session.id).notes == "Opened late\nAll good"

    def test_closing_twice_is_rejected(self, app, pos, open_session):
        cash_session_service.close_session(_close_input(open_session, pos))

        with pytest.raises(SessionStatusError) as excinfo:
            cash_session_service.close_session(_close_input(open_session, pos))
        assert excinfo.value.status == CashSessionStatus.CLOSED

    def test_closing_from_other_pos_is_rejected(self, app, other_pos, open_session):
        with pytest.raises(SessionMismatchError):
            cash_session_service.close_session(_close_input(open_session, other_pos))

        assert db.session.get(CashSession, open_session.id).status == CashSessionStatus.OPEN

    def test_any_user_may_count_the_drawer(self, app, pos, open_session, other_cashier):
        cash_session_service.close_session(_close_input(open_session, pos, user_name="cashier2"))

        assert db.session.get(CashSession, open_session.id).closed_by_id == other_cashier.id

    def test_difference_requires_note_when_configured(self, app, monkeypatch, pos, open_session):
        monkeypatch.setitem(app.config, "REQUIRE_CLOSING_NOTE_ON_DIFFERENCE", True)

        with pytest.raises(ValidationError):
            cash_session_service.close_session(_close_input(open_session, pos, actual_cash=10))

        result = cash_session_service.close_session(
            _close_input(open_session, pos, actual_cash=10, notes="Tip jar mixed in")
        )
        assert result.difference["cash"] == Decimal("10.00")

    def test_pos_can_reopen_after_close(self, app, pos, open_session):
        cash_session_service.close_session(_close_input(open_session, pos))

        session, _ = cash_session_service.open_session(OpenSessionInput(user_name="cashier1", point_of_sale_id=pos.id))

        assert session.id != open_session.id
        assert cash_session_service.get_open_session(pos.id).id == session.id


class TestSessionQueries:

    def test_list_sessions_filters_by_status(self, app, pos, open_session):
        cash_session_service.close_session(_close_input(open_session, pos))
        cash_session_service.open_session(OpenSessionInput(user_name="cashier1", point_of_sale_id=pos.id))

        closed = cash_session_service.list_sessions(point_of_sale_id=pos.id, status=CashSessionStatus.CLOSED)
        everything = cash_session_service.list_sessions(point_of_sale_id=pos.id)

        assert [s.id for s in closed] == [open_session.id]
        assert len(everything) == 2

    def test_list_sessions_rejects_unknown_status(self, app, db_session):
        with pytest.raises(ValidationError):
            cash_session_service.list_sessions(status="PAUSED")

    def test_get_session_not_found(self, app, db_session):
        with pytest.raises(NotFoundError):
            cash_session_service.get_session(999999)


class TestConcurrentWriters:
    """
    Several registers hitting the same rows at once, each thread on its own
    connection to a file-backed database.
    """

    def test_concurrent_open_leaves_one_open_session(self, file_app, run_concurrently):
        app, seeded = file_app

        def open_drawer():
            cash_session_service.open_session(
                OpenSessionInput(user_name=seeded.user_name, point_of_sale_id=seeded.pos_id)
            )

        outcomes = run_concurrently(app, [open_drawer] * 8)

        assert outcomes.count("ok") == 1
        assert sorted(set(outcomes)) == ["CONFLICT", "ok"]
        with app.app_context():
            assert CashSession.query.filter_by(
                point_of_sale_id=seeded.pos_id, status=CashSessionStatus.OPEN
            ).count() == 1

    def test_concurrent_opening_is_posted_once(self, file_app, run_concurrently):
        app, seeded = file_app
        with app.app_context():
            session, _ = cash_session_service.open_session(
                OpenSessionInput(user_name=seeded.user_name, point_of_sale_id=seeded.pos_id)
            )
            session_id = session.id
            db.session.remove()

        def post_opening():
            cash_session_service.post_opening_transaction(
                OpeningInput(cash_session_id=session_id, user_name=seeded.user_name, opening_amount=Decimal("5000"))
            )

        outcomes = run_concurrently(app, [post_opening] * 8)

        assert outcomes.count("ok") == 1
        assert sorted(set(outcomes)) == ["CONFLICT", "ok"]
        with app.app_context():
            assert LedgerTransaction.query.filter_by(
                cash_session_id=session_id,
                transaction_type=TransactionType.CASH_SESSION_OPENING,
            ).count() == 1
            assert db.session.get(CashSession, session_id).opening_amount == Decimal("5000.00")
