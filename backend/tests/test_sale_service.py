"""
Tests for POS sales: line pricing, tax resolution, unit conversion and
the all-or-nothing posting of a sale.
"""

from decimal import Decimal

import pytest

from cashledger.errors import ConflictError, SessionStatusError, ValidationError
from cashledger.extensions import db
from cashledger.models import (
    CashSession,
    Company,
    LedgerEvent,
    LedgerTransaction,
    PaymentMethod,
    Tax,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from cashledger.services import cash_session_service, ledger_service, sale_service
from cashledger.validation import CloseSessionInput, SaleInput


def _sale(session, pos, lines, payment_method="CASH", **extra):
    payload = {
        "user_name": "cashier1",
        "point_of_sale_id": pos.id,
        "cash_session_id": session.id,
        "payment_method": payment_method,
        "lines": lines,
    }
    payload.update(extra)
    return SaleInput.from_payload(payload)


class TestSalePricing:

    def test_cash_sale_with_product_taxes(self, app, iva, pos, variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 2, "unit_price": 1000},
        ]))

        assert tx.transaction_type == TransactionType.SALE
        assert tx.status == TransactionStatus.CONFIRMED
        assert tx.document_number == "VTA-00000001"
        assert tx.subtotal == Decimal("2000.00")
        assert tx.tax_amount == Decimal("380.00")
        assert tx.discount_amount == Decimal("0.00")
        assert tx.total == Decimal("2380.00")

        line = tx.lines[0]
        assert line.line_number == 1
        assert line.tax_id == iva.id
        assert line.tax_rate == Decimal("19.0000")
        assert line.product_sku == "COF-250"
        assert line.variant_name == "250g, Dark"
        assert line.total == Decimal("2380.00")

    def test_line_discount_is_applied_before_tax(self, app, pos, variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"productVariantId": variant.id, "quantity": 2, "unitPrice": 1000, "discountAmount": 100},
        ]))

        line = tx.lines[0]
        assert line.discount_percentage == Decimal("5.0000")
        assert line.tax_amount == Decimal("361.00")
        assert tx.subtotal == Decimal("2000.00")
        assert tx.discount_amount == Decimal("100.00")
        assert tx.total == Decimal("2261.00")
        assert tx.total == tx.subtotal + tx.tax_amount - tx.discount_amount

    def test_explicit_tax_rate_wins(self, app, pos, variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 3, "unit_price": "999.99", "tax_rate": 10},
        ]))

        assert tx.subtotal == Decimal("2999.97")
        assert tx.tax_amount == Decimal("300.00")
        assert tx.lines[0].tax_id is None

    def test_tax_id_is_looked_up(self, app, db_session, company, pos, variant, open_session):
        reduced = Tax(company_id=company.id, code="RED", name="Reduced 5%", rate=5)
        db_session.add(reduced)
        db_session.commit()

        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000, "tax_id": reduced.id},
        ]))

        assert tx.tax_amount == Decimal("50.00")
        assert tx.lines[0].tax_id == reduced.id

    def test_explicit_tax_amount_is_kept(self, app, pos, variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000, "tax_amount": 123.45},
        ]))
        assert tx.tax_amount == Decimal("123.45")
        assert tx.total == Decimal("1123.45")

    def test_multi_line_header_is_sum_of_lines(self, app, pos, variant, box_variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
            {"product_variant_id": box_variant.id, "quantity": 2, "unit_price": 11000},
        ]))

        assert [line.line_number for line in tx.lines] == [1, 2]
        assert tx.subtotal == Decimal("23000.00")
        assert tx.tax_amount == Decimal("4370.00")
        assert tx.total == sum((line.total for line in tx.lines), Decimal("0"))


class TestSaleStock:

    def test_box_quantity_is_stored_in_base_units(self, app, pos, box_variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": box_variant.id, "quantity": 2, "unit_price": 11000},
        ]))

        line = tx.lines[0]
        assert line.unit_conversion_factor == Decimal("12")
        assert line.quantity_in_base == Decimal("24.0000")
        assert ledger_service.inventory_balance(product_variant_id=box_variant.id) == Decimal("-24.0000")


class TestSaleCash:

    def test_cash_sale_raises_expected_drawer_cash(self, app, pos, variant, open_session):
        sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 2, "unit_price": 1000},
        ], amount_paid=3000, change_amount=620))

        session = db.session.get(CashSession, open_session.id)
        assert session.expected_amount == Decimal("2380.00")

    def test_card_sale_is_not_drawer_cash(self, app, pos, variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
        ], payment_method="debit_card"))

        assert tx.payment_method == PaymentMethod.DEBIT_CARD
        assert ledger_service.drawer_cash_balance(open_session.id) == Decimal("0.00")
        assert ledger_service.tender_breakdown(open_session)["debit_card"] == Decimal("1190.00")

    def test_metadata_records_origin(self, app, pos, variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
        ], metadata={"ticket": "A-7"}))

        assert tx.extra_metadata == {
            "ticket": "A-7",
            "cashSessionId": open_session.id,
            "pointOfSaleId": pos.id,
            "pointOfSaleName": "pos-1",
            "saleSource": "POS",
        }
        assert LedgerEvent.query.filter_by(event_type="ledger.sale_posted", ledger_transaction_id=tx.id).count() == 1


class TestSaleRejections:

    def test_internal_credit_requires_customer(self, app, pos, variant, open_session):
        with pytest.raises(ValidationError):
            sale_service.create_sale(_sale(open_session, pos, [
                {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
            ], payment_method="INTERNAL_CREDIT"))

    def test_internal_credit_with_customer_is_accepted(self, app, pos, variant, open_session):
        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
        ], payment_method="INTERNAL_CREDIT", customer_id=77))

        assert tx.customer_id == 77
        assert ledger_service.drawer_cash_balance(open_session.id) == Decimal("0.00")

    def test_one_bad_line_rejects_the_whole_sale(self, app, db_session, pos, variant, box_variant, open_session):
        box_variant.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError) as excinfo:
            sale_service.create_sale(_sale(open_session, pos, [
                {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
                {"product_variant_id": box_variant.id, "quantity": 1, "unit_price": 11000},
                {"product_variant_id": variant.id, "quantity": 1, "unit_price": 10, "discount_amount": 50},
            ]))

        errors = excinfo.value.errors
        assert any(e.startswith("lines[1]") for e in errors)
        assert any(e.startswith("lines[2]") for e in errors)
        assert LedgerTransaction.query.count() == 0
        assert TransactionLine.query.count() == 0

    def test_deleted_product_is_rejected(self, app, db_session, pos, product, variant, open_session):
        product.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            sale_service.create_sale(_sale(open_session, pos, [
                {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
            ]))

    def test_duplicate_document_number_conflicts(self, app, pos, variant, open_session):
        lines = [{"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000}]
        sale_service.create_sale(_sale(open_session, pos, lines, document_number="B-100"))

        with pytest.raises(ConflictError):
            sale_service.create_sale(_sale(open_session, pos, lines, document_number="B-100"))

        assert LedgerTransaction.query.filter_by(document_number="B-100").count() == 1

    def test_supplied_number_does_not_block_auto_numbering(self, app, pos, variant, open_session):
        lines = [{"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000}]
        sale_service.create_sale(_sale(open_session, pos, lines, document_number="VTA-00000001"))

        numbers = [sale_service.create_sale(_sale(open_session, pos, lines)).document_number for _ in range(3)]

        assert numbers == ["VTA-00000002", "VTA-00000003", "VTA-00000004"]
        assert LedgerTransaction.query.filter_by(transaction_type=TransactionType.SALE).count() == 4

    def test_inactive_tax_id_is_rejected(self, app, db_session, company, pos, variant, open_session):
        retired = Tax(company_id=company.id, code="OLD", name="Retired 10%", rate=10, is_active=False)
        db_session.add(retired)
        db_session.commit()

        with pytest.raises(ValidationError) as exc:
            sale_service.create_sale(_sale(open_session, pos, [
                {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000, "tax_id": retired.id},
            ]))

        assert exc.value.errors == [f"lines[0]: tax {retired.id} is not active"]
        assert LedgerTransaction.query.filter_by(transaction_type=TransactionType.SALE).count() == 0

    def test_tax_of_another_company_is_rejected(self, app, db_session, pos, variant, open_session):
        rival = Company(name="Rival Retail", tax_id="76.222.222-2", is_active=True)
        db_session.add(rival)
        db_session.flush()
        foreign = Tax(company_id=rival.id, code="RIV", name="Rival 5%", rate=5)
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(ValidationError) as exc:
            sale_service.create_sale(_sale(open_session, pos, [
                {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000, "tax_id": foreign.id},
            ]))

        assert exc.value.errors == [f"lines[0]: tax {foreign.id} not found"]

    def test_shared_tax_is_accepted(self, app, db_session, pos, variant, open_session):
        shared = Tax(company_id=None, code="EXE", name="Exempt", rate=0)
        db_session.add(shared)
        db_session.commit()

        tx = sale_service.create_sale(_sale(open_session, pos, [
            {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000, "tax_id": shared.id},
        ]))

        assert tx.tax_amount == Decimal("0.00")
        assert tx.lines[0].tax_id == shared.id

    def test_sale_on_closed_session(self, app, pos, variant, open_session):
        cash_session_service.close_session(CloseSessionInput.from_payload({
            "user_name": "cashier1",
            "point_of_sale_id": pos.id,
            "cash_session_id": open_session.id,
            "actual_cash": 0,
        }))

        with pytest.raises(SessionStatusError):
            sale_service.create_sale(_sale(open_session, pos, [
                {"product_variant_id": variant.id, "quantity": 1, "unit_price": 1000},
            ]))

    def test_empty_sale_is_rejected_at_parse_time(self, app, pos, open_session):
        with pytest.raises(ValidationError):
            _sale(open_session, pos, [])
