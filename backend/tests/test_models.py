"""
Tests for model-level invariants of ledger transactions and cash sessions.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from cashledger.errors import ConflictError, InvalidStateError, ValidationError
from cashledger.extensions import db
from cashledger.models import (
    CashSession,
    CashSessionStatus,
    LedgerTransaction,
    PaymentMethod,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from cashledger.services.concurrency import atomic
from cashledger.time_utils import utcnow


class TestTransactionTotals:

    def test_total_is_derived_from_components(self, app):
        tx = LedgerTransaction(
            document_number="X-1",
            transaction_type=TransactionType.SALE,
            subtotal=Decimal("1000.005"),
            tax_amount=190,
            discount_amount=Decimal("10.50"),
        )

        assert tx.subtotal == Decimal("1000.01")
        assert tx.total == Decimal("1179.51")

    def test_matching_explicit_total_is_accepted(self, app):
        tx = LedgerTransaction(
            document_number="X-2",
            transaction_type=TransactionType.SALE,
            subtotal=100,
            tax_amount=19,
            total=Decimal("119.00"),
        )
        assert tx.total == Decimal("119.00")

    def test_mismatching_total_is_rejected(self, app):
        with pytest.raises(ValidationError):
            LedgerTransaction(
                document_number="X-3",
                transaction_type=TransactionType.SALE,
                subtotal=100,
                tax_amount=19,
                total=100,
            )


class TestConfirmedImmutability:

    def _confirmed(self, db_session, company):
        tx = LedgerTransaction(
            document_number="PIE-TEST",
            transaction_type=TransactionType.PAYMENT_IN,
            status=TransactionStatus.CONFIRMED,
            company_id=company.id,
            subtotal=100,
            payment_method=PaymentMethod.CASH,
        )
        db_session.add(tx)
        db_session.commit()
        return tx

    def test_money_fields_cannot_change_once_confirmed(self, app, db_session, company):
        tx = self._confirmed(db_session, company)
        assert tx.total == Decimal("100.00")

        tx.total = Decimal("50.00")
        with pytest.raises(InvalidStateError):
            db_session.flush()
        db_session.rollback()

        assert db.session.get(LedgerTransaction, tx.id).total == Decimal("100.00")

    def test_confirmed_transaction_can_be_cancelled(self, app, db_session, company):
        tx = self._confirmed(db_session, company)
        assert tx.status == TransactionStatus.CONFIRMED

        tx.status = TransactionStatus.CANCELLED
        db_session.commit()

        assert db.session.get(LedgerTransaction, tx.id).status == TransactionStatus.CANCELLED

    def test_draft_amounts_are_editable(self, app, db_session, company):
        tx = LedgerTransaction(
            document_number="DRAFT-1",
            transaction_type=TransactionType.PURCHASE,
            status=TransactionStatus.DRAFT,
            company_id=company.id,
            subtotal=100,
        )
        db_session.add(tx)
        db_session.commit()
        assert tx.subtotal == Decimal("100.00")

        tx.subtotal = Decimal("120.00")
        tx.total = Decimal("120.00")
        db_session.commit()

        assert db.session.get(LedgerTransaction, tx.id).total == Decimal("120.00")


class TestLineQuantities:

    def test_resolved_quantity_prefers_cached_value(self):
        line = TransactionLine(quantity=Decimal("2"), quantity_in_base=Decimal("24"), unit_conversion_factor=12)
        assert line.resolved_quantity_in_base() == Decimal("24.0000")

    def test_resolved_quantity_recomputes_from_factor(self):
        line = TransactionLine(quantity=Decimal("1.5"), quantity_in_base=None, unit_conversion_factor=Decimal("12"))
        assert line.resolved_quantity_in_base() == Decimal("18.0000")

    def test_resolved_quantity_defaults_factor_to_one(self):
        line = TransactionLine(quantity=Decimal("3"), quantity_in_base=None, unit_conversion_factor=None)
        assert line.resolved_quantity_in_base() == Decimal("3.0000")


class TestStoreUniqueness:

    def test_store_rejects_second_open_session_per_pos(self, app, db_session, pos, cashier, open_session):
        db_session.add(CashSession(
            point_of_sale_id=pos.id,
            opened_by_id=cashier.id,
            status=CashSessionStatus.OPEN,
            opened_at=utcnow(),
        ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_closed_sessions_do_not_block(self, app, db_session, pos, cashier):
        for _ in range(2):
            db_session.add(CashSession(
                point_of_sale_id=pos.id,
                opened_by_id=cashier.id,
                status=CashSessionStatus.CLOSED,
                opened_at=utcnow(),
            ))
        db_session.commit()

        assert CashSession.query.filter_by(point_of_sale_id=pos.id).count() == 2

    def test_unit_of_work_maps_unique_violation_to_conflict(self, app, db_session, pos, cashier, open_session):
        with pytest.raises(ConflictError) as excinfo:
            with atomic(conflict_message="Point of sale already has an open cash session"):
                db.session.add(CashSession(
                    point_of_sale_id=pos.id,
                    opened_by_id=cashier.id,
                    status=CashSessionStatus.OPEN,
                    opened_at=utcnow(),
                ))

        assert excinfo.value.kind == "CONFLICT"
        assert CashSession.query.filter_by(point_of_sale_id=pos.id, status=CashSessionStatus.OPEN).count() == 1

    def test_store_rejects_second_opening_per_session(self, app, db_session, company, open_session):
        for number in ("CSO-A", "CSO-B"):
            db_session.add(LedgerTransaction(
                document_number=number,
                transaction_type=TransactionType.CASH_SESSION_OPENING,
                status=TransactionStatus.CONFIRMED,
                company_id=company.id,
                cash_session_id=open_session.id,
                subtotal=10,
            ))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()
