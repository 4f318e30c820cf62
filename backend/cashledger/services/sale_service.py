# Overview: Sale transaction builder; expands a cart into priced, taxed, stock-aware ledger rows.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    LedgerTransaction,
    PaymentMethod,
    ProductVariant,
    TransactionLine,
    TransactionStatus,
    TransactionType,
)
from cashledger.errors import ConflictError, ValidationError
from cashledger.money_utils import ZERO, money_json, round_money, round_quantity, round_rate, to_decimal
from cashledger.time_utils import utcnow
from cashledger.validation import SaleInput, SaleLineInput
from .audit_service import append_ledger_event
from .concurrency import atomic
from .document_service import next_document_number
from .movement_service import refresh_expected_amount, resolve_movement_context
from .pricing_service import active_tax_rates, compute_price_with_taxes, get_tax, total_tax_rate


SALE_SOURCE = "POS"


@dataclass
class BuiltLine:
    """One priced line, ready to persist."""

    variant: ProductVariant
    quantity: Decimal
    quantity_in_base: Decimal
    unit_conversion_factor: Decimal
    unit_price: Decimal
    unit_cost: Decimal | None
    subtotal: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    tax_id: int | None
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    notes: str | None


def _resolve_tax(
    line: SaleLineInput,
    variant: ProductVariant,
    label: str,
    errors: list[str],
    company_id: int | None = None,
) -> tuple[int | None, Decimal]:
    """
    Tax rate of a line:
    - explicit tax_rate is trusted as given
    - tax_id looks the rate up; the tax must be active and shared or owned by
      the selling company
    - otherwise the variant's (or product's) configured active taxes are summed
    """
    if line.tax_rate is not None:
        return line.tax_id, round_rate(line.tax_rate)

    if line.tax_id is not None:
        tax = get_tax(line.tax_id)
        if not tax or (company_id is not None and tax.company_id not in (None, company_id)):
            errors.append(f"{label}: tax {line.tax_id} not found")
            return None, round_rate(ZERO)
        if not tax.is_active:
            errors.append(f"{label}: tax {line.tax_id} is not active")
            return None, round_rate(ZERO)
        return tax.id, round_rate(tax.rate)

    tax_ids = variant.configured_tax_ids()
    rate = total_tax_rate(active_tax_rates(tax_ids))
    return (tax_ids[0] if len(tax_ids) == 1 else None), rate


def build_line(line: SaleLineInput, index: int, errors: list[str], company_id: int | None = None) -> BuiltLine | None:
    label = f"lines[{index}]"

    quantity = to_decimal(line.quantity)
    unit_price = to_decimal(line.unit_price)
    if quantity is None or unit_price is None:
        errors.append(f"{label}: quantity and unit_price must be finite numbers")
        return None
    quantity = round_quantity(quantity)
    if quantity <= ZERO:
        errors.append(f"{label}: quantity must be greater than 0")
        return None
    unit_price = round_money(unit_price)
    if unit_price < ZERO:
        errors.append(f"{label}: unit_price must be >= 0")
        return None

    variant = db.session.get(ProductVariant, line.product_variant_id)
    if not variant or not variant.is_active or variant.deleted_at is not None:
        errors.append(f"{label}: product variant {line.product_variant_id} not found or inactive")
        return None
    product = variant.product
    if not product or not product.is_active or product.deleted_at is not None:
        errors.append(f"{label}: product of variant {variant.id} is not active")
        return None

    subtotal = round_money(quantity * unit_price)
    discount = round_money(line.discount_amount or ZERO)
    if discount < ZERO or discount > subtotal:
        errors.append(f"{label}: discount_amount must be between 0 and the line subtotal")
        return None

    tax_errors: list[str] = []
    tax_id, tax_rate = _resolve_tax(line, variant, label, tax_errors, company_id)
    if tax_errors:
        errors.extend(tax_errors)
        return None

    taxable = subtotal - discount
    if line.tax_amount is not None:
        tax_amount = round_money(line.tax_amount)
    else:
        price = compute_price_with_taxes(net_price=taxable, tax_rates=[tax_rate])
        tax_amount = price.gross_price - price.net_price
    if tax_amount < ZERO:
        tax_amount = round_money(ZERO)

    factor = to_decimal(variant.unit_conversion_factor)
    if factor is None or factor <= ZERO:
        factor = Decimal("1")

    return BuiltLine(
        variant=variant,
        quantity=quantity,
        quantity_in_base=round_quantity(quantity * factor),
        unit_conversion_factor=factor,
        unit_price=unit_price,
        unit_cost=round_money(line.unit_cost) if line.unit_cost is not None else None,
        subtotal=subtotal,
        discount_amount=discount,
        discount_percentage=round_rate(discount / subtotal * 100) if subtotal > ZERO else round_rate(ZERO),
        tax_id=tax_id,
        tax_rate=tax_rate,
        tax_amount=round_money(tax_amount),
        total=round_money(taxable + tax_amount),
        notes=line.notes,
    )


def build_sale_lines(lines, company_id: int | None = None) -> list[BuiltLine]:
    """
    Price every line or none. All line problems are reported together in one
    ValidationError so no partial sale is ever persisted.
    """
    if not lines:
        raise ValidationError("A sale needs at least one line")

    errors: list[str] = []
    built = []
    for index, line in enumerate(lines):
        result = build_line(line, index, errors, company_id)
        if result is not None:
            built.append(result)

    if errors:
        raise ValidationError("Invalid sale lines", errors)
    return built


def _find_sale(document_number: str) -> LedgerTransaction | None:
    return LedgerTransaction.query.filter_by(
        transaction_type=TransactionType.SALE,
        document_number=document_number,
    ).first()


def create_sale(data: SaleInput) -> LedgerTransaction:
    """
    Post a confirmed POS sale with its lines.

    POS sales are never drafted. Header totals are the sums of the line
    amounts, so total == subtotal + tax_amount - discount_amount holds for the
    header as it does for every line.

    Raises:
        NotFoundError / SessionStatusError / SessionMismatchError: movement preconditions
        ValidationError: malformed lines, internal credit without customer
        ConflictError: caller-supplied document number already used
    """
    if data.payment_method == PaymentMethod.INTERNAL_CREDIT and not data.customer_id:
        raise ValidationError("A sale on internal credit requires a customer")

    with atomic(conflict_message="Sale document number already exists"):
        ctx = resolve_movement_context(data.user_name, data.point_of_sale_id, data.cash_session_id)
        pos = ctx.point_of_sale

        if data.document_number:
            taken = _find_sale(data.document_number)
            if taken:
                raise ConflictError(
                    f"Sale document number {data.document_number} already exists",
                    details={"transaction_id": taken.id},
                )
            document_number = data.document_number
        else:
            # Skip counter values a caller already used as their own number.
            document_number = next_document_number(TransactionType.SALE)
            while _find_sale(document_number) is not None:
                document_number = next_document_number(TransactionType.SALE)

        built = build_sale_lines(data.lines, pos.company_id)

        metadata = dict(data.metadata or {})
        metadata.update({
            "cashSessionId": ctx.cash_session.id,
            "pointOfSaleId": pos.id,
            "pointOfSaleName": pos.name,
            "saleSource": SALE_SOURCE,
        })

        tx = LedgerTransaction(
            document_number=document_number,
            transaction_type=TransactionType.SALE,
            status=TransactionStatus.CONFIRMED,
            company_id=pos.company_id,
            branch_id=pos.branch_id,
            point_of_sale_id=pos.id,
            cash_session_id=ctx.cash_session.id,
            customer_id=data.customer_id,
            user_id=ctx.user.id,
            subtotal=sum((line.subtotal for line in built), ZERO),
            tax_amount=sum((line.tax_amount for line in built), ZERO),
            discount_amount=sum((line.discount_amount for line in built), ZERO),
            payment_method=data.payment_method,
            bank_account_key=data.bank_account_key,
            amount_paid=round_money(data.amount_paid) if data.amount_paid is not None else None,
            change_amount=round_money(data.change_amount) if data.change_amount is not None else None,
            external_reference=data.external_reference,
            storage_id=data.storage_id,
            notes=data.notes,
            extra_metadata=metadata,
            created_at=utcnow(),
        )

        for number, line in enumerate(built, start=1):
            variant = line.variant
            tx.lines.append(TransactionLine(
                line_number=number,
                product_variant_id=variant.id,
                product_id=variant.product_id,
                product_name=variant.product.name,
                product_sku=variant.sku,
                variant_name=variant.display_name,
                unit_of_measure=variant.unit_symbol,
                quantity=line.quantity,
                quantity_in_base=line.quantity_in_base,
                unit_conversion_factor=line.unit_conversion_factor,
                unit_cost=line.unit_cost,
                unit_price=line.unit_price,
                discount_percentage=line.discount_percentage,
                discount_amount=line.discount_amount,
                tax_id=line.tax_id,
                tax_rate=line.tax_rate,
                tax_amount=line.tax_amount,
                subtotal=line.subtotal,
                total=line.total,
                notes=line.notes,
            ))

        db.session.add(tx)
        db.session.flush()

        refresh_expected_amount(ctx.cash_session)

        append_ledger_event(
            event_type="ledger.sale_posted",
            entity_type="ledger_transaction",
            entity_id=tx.id,
            company_id=tx.company_id,
            actor_user_id=ctx.user.id,
            point_of_sale_id=pos.id,
            cash_session_id=ctx.cash_session.id,
            ledger_transaction_id=tx.id,
            payload={
                "document_number": tx.document_number,
                "total": money_json(tx.total),
                "payment_method": tx.payment_method,
                "lines": len(built),
            },
        )

    current_app.logger.info("Sale %s posted in cash session %s", tx.document_number, data.cash_session_id)
    return tx
