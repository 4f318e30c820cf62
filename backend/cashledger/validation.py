"""
Strict input parsing for cash session and ledger operations.

Each operation has one frozen dataclass with a ``from_payload`` constructor.
Parsing walks every field, collects every violation and raises a single
ValidationError listing all of them, so a client can fix a form in one pass.

Keys are accepted in snake_case or camelCase (``point_of_sale_id`` or
``pointOfSaleId``). Numbers may be JSON numbers or numeric strings; booleans,
NaN and infinities are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from cashledger.errors import ValidationError
from cashledger.models import PaymentMethod
from cashledger.money_utils import ZERO, round_money, round_quantity, round_rate, to_decimal


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class PayloadReader:
    """Reads typed fields out of a JSON object and accumulates errors."""

    def __init__(self, payload: Any, prefix: str = ""):
        self.errors: list[str] = []
        self.prefix = prefix
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            self.errors.append(f"{prefix or 'payload'} must be a JSON object")
            payload = {}
        self.payload = payload

    def _label(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def raw(self, name: str, *aliases: str) -> Any:
        for key in (name, _camel(name), *aliases):
            if key in self.payload:
                return self.payload[key]
        return None

    def error(self, message: str) -> None:
        self.errors.append(message)

    def text(self, name: str, *aliases: str, required: bool = False, max_length: int | None = None) -> str | None:
        value = self.raw(name, *aliases)
        if value is None:
            if required:
                self.error(f"{self._label(name)} is required")
            return None
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            self.error(f"{self._label(name)} must be a string")
            return None
        cleaned = str(value).strip()
        if not cleaned:
            if required:
                self.error(f"{self._label(name)} is required")
            return None
        if max_length and len(cleaned) > max_length:
            self.error(f"{self._label(name)} exceeds max length {max_length}")
            return None
        return cleaned

    def integer(self, name: str, *aliases: str, required: bool = False) -> int | None:
        value = self.raw(name, *aliases)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self.error(f"{self._label(name)} is required")
            return None
        if isinstance(value, bool):
            self.error(f"{self._label(name)} must be an integer")
            return None
        if isinstance(value, int):
            parsed = value
        elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
            parsed = int(value.strip())
        else:
            self.error(f"{self._label(name)} must be an integer")
            return None
        if parsed <= 0:
            self.error(f"{self._label(name)} must be a positive id")
            return None
        return parsed

    def number(
        self,
        name: str,
        *aliases: str,
        required: bool = False,
        minimum: Decimal | None = None,
        positive: bool = False,
        places: str = "money",
    ) -> Decimal | None:
        value = self.raw(name, *aliases)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self.error(f"{self._label(name)} is required")
            return None
        parsed = to_decimal(value)
        if parsed is None:
            self.error(f"{self._label(name)} must be a finite number")
            return None

        if places == "quantity":
            parsed = round_quantity(parsed)
        elif places == "rate":
            parsed = round_rate(parsed)
        else:
            parsed = round_money(parsed)

        if positive and parsed <= ZERO:
            self.error(f"{self._label(name)} must be greater than 0")
            return None
        if minimum is not None and parsed < minimum:
            self.error(f"{self._label(name)} must be >= {minimum}")
            return None
        return parsed

    def choice(self, name: str, options, *aliases: str, required: bool = False) -> str | None:
        value = self.text(name, *aliases, required=required)
        if value is None:
            return None
        normalized = value.upper()
        if normalized not in options:
            self.error(f"{self._label(name)} must be one of: {', '.join(options)}")
            return None
        return normalized

    def mapping(self, name: str, *aliases: str) -> dict | None:
        value = self.raw(name, *aliases)
        if value is None:
            return None
        if not isinstance(value, dict):
            self.error(f"{self._label(name)} must be an object")
            return None
        return dict(value)

    def items(self, name: str, *aliases: str, required: bool = False) -> list:
        value = self.raw(name, *aliases)
        if value is None:
            if required:
                self.error(f"{self._label(name)} is required")
            return []
        if not isinstance(value, list):
            self.error(f"{self._label(name)} must be a list")
            return []
        if required and not value:
            self.error(f"{self._label(name)} must contain at least one item")
        return value

    def raise_if_errors(self, message: str = "Invalid request") -> None:
        if self.errors:
            raise ValidationError(message, self.errors)


@dataclass(frozen=True)
class OpenSessionInput:
    user_name: str
    point_of_sale_id: int
    opening_amount: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "OpenSessionInput":
        reader = PayloadReader(payload)
        user_name = reader.text("user_name", required=True)
        point_of_sale_id = reader.integer("point_of_sale_id", required=True)
        opening_amount = reader.number("opening_amount", minimum=ZERO)
        reader.raise_if_errors()
        return cls(user_name=user_name, point_of_sale_id=point_of_sale_id, opening_amount=opening_amount)


@dataclass(frozen=True)
class OpeningInput:
    cash_session_id: int
    user_name: str
    opening_amount: Decimal = ZERO

    @classmethod
    def from_payload(cls, payload: Any) -> "OpeningInput":
        reader = PayloadReader(payload)
        cash_session_id = reader.integer("cash_session_id", required=True)
        user_name = reader.text("user_name", required=True)
        opening_amount = reader.number("opening_amount", "amount", minimum=ZERO)
        reader.raise_if_errors()
        return cls(
            cash_session_id=cash_session_id,
            user_name=user_name,
            opening_amount=opening_amount if opening_amount is not None else round_money(ZERO),
        )


@dataclass(frozen=True)
class CashMovementInput:
    """Deposit or withdrawal of cash into/out of an open drawer."""

    user_name: str
    point_of_sale_id: int
    cash_session_id: int
    amount: Decimal
    reason: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CashMovementInput":
        reader = PayloadReader(payload)
        user_name = reader.text("user_name", required=True)
        point_of_sale_id = reader.integer("point_of_sale_id", required=True)
        cash_session_id = reader.integer("cash_session_id", required=True)
        amount = reader.number("amount", required=True, positive=True)
        reason = reader.text("reason", max_length=500)
        reader.raise_if_errors()
        return cls(
            user_name=user_name,
            point_of_sale_id=point_of_sale_id,
            cash_session_id=cash_session_id,
            amount=amount,
            reason=reason,
        )


TENDER_FIELDS = (
    "actual_cash",
    "voucher_debit_amount",
    "voucher_credit_amount",
    "transfer_amount",
    "check_amount",
    "other_amount",
)


@dataclass(frozen=True)
class CloseSessionInput:
    user_name: str
    point_of_sale_id: int
    cash_session_id: int
    actual_cash: Decimal
    voucher_debit_amount: Decimal
    voucher_credit_amount: Decimal
    transfer_amount: Decimal
    check_amount: Decimal
    other_amount: Decimal
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CloseSessionInput":
        reader = PayloadReader(payload)
        user_name = reader.text("user_name", required=True)
        point_of_sale_id = reader.integer("point_of_sale_id", required=True)
        cash_session_id = reader.integer("cash_session_id", required=True)

        tenders = {}
        for name in TENDER_FIELDS:
            tenders[name] = reader.number(name, required=(name == "actual_cash"), minimum=ZERO)

        notes = reader.text("notes", max_length=2000)
        reader.raise_if_errors()

        return cls(
            user_name=user_name,
            point_of_sale_id=point_of_sale_id,
            cash_session_id=cash_session_id,
            notes=notes,
            **{name: value if value is not None else round_money(ZERO) for name, value in tenders.items()},
        )

    def tenders(self) -> dict[str, Decimal]:
        return {
            "cash": self.actual_cash,
            "debit_card": self.voucher_debit_amount,
            "credit_card": self.voucher_credit_amount,
            "transfer": self.transfer_amount,
            "check": self.check_amount,
            "other": self.other_amount,
        }


@dataclass(frozen=True)
class SaleLineInput:
    product_variant_id: int
    quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal | None = None
    tax_id: int | None = None
    tax_rate: Decimal | None = None
    tax_amount: Decimal | None = None
    unit_cost: Decimal | None = None
    notes: str | None = None

    @classmethod
    def read(cls, raw: Any, index: int, errors: list[str]) -> "SaleLineInput | None":
        reader = PayloadReader(raw, prefix=f"lines[{index}].")
        product_variant_id = reader.integer("product_variant_id", required=True)
        quantity = reader.number("quantity", required=True, positive=True, places="quantity")
        unit_price = reader.number("unit_price", required=True, minimum=ZERO)
        discount_amount = reader.number("discount_amount", minimum=ZERO)
        tax_id = reader.integer("tax_id")
        tax_rate = reader.number("tax_rate", minimum=ZERO, places="rate")
        tax_amount = reader.number("tax_amount", minimum=ZERO)
        unit_cost = reader.number("unit_cost", minimum=ZERO)
        notes = reader.text("notes", max_length=1000)

        if reader.errors:
            errors.extend(reader.errors)
            return None
        return cls(
            product_variant_id=product_variant_id,
            quantity=quantity,
            unit_price=unit_price,
            discount_amount=discount_amount,
            tax_id=tax_id,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            unit_cost=unit_cost,
            notes=notes,
        )


@dataclass(frozen=True)
class SaleInput:
    user_name: str
    point_of_sale_id: int
    cash_session_id: int
    payment_method: str
    lines: tuple[SaleLineInput, ...]
    customer_id: int | None = None
    document_number: str | None = None
    external_reference: str | None = None
    notes: str | None = None
    metadata: dict = field(default_factory=dict)
    amount_paid: Decimal | None = None
    change_amount: Decimal | None = None
    bank_account_key: str | None = None
    storage_id: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SaleInput":
        reader = PayloadReader(payload)
        user_name = reader.text("user_name", required=True)
        point_of_sale_id = reader.integer("point_of_sale_id", required=True)
        cash_session_id = reader.integer("cash_session_id", required=True)
        payment_method = reader.choice("payment_method", PaymentMethod.ALL, required=True)

        lines = []
        for index, raw_line in enumerate(reader.items("lines", "items", required=True)):
            line = SaleLineInput.read(raw_line, index, reader.errors)
            if line is not None:
                lines.append(line)

        customer_id = reader.integer("customer_id")
        document_number = reader.text("document_number", max_length=64)
        external_reference = reader.text("external_reference", max_length=128)
        notes = reader.text("notes", max_length=2000)
        metadata = reader.mapping("metadata")
        amount_paid = reader.number("amount_paid", minimum=ZERO)
        change_amount = reader.number("change_amount", minimum=ZERO)
        bank_account_key = reader.text("bank_account_key", max_length=64)
        storage_id = reader.integer("storage_id")

        reader.raise_if_errors()
        return cls(
            user_name=user_name,
            point_of_sale_id=point_of_sale_id,
            cash_session_id=cash_session_id,
            payment_method=payment_method,
            lines=tuple(lines),
            customer_id=customer_id,
            document_number=document_number,
            external_reference=external_reference,
            notes=notes,
            metadata=metadata or {},
            amount_paid=amount_paid,
            change_amount=change_amount,
            bank_account_key=bank_account_key,
            storage_id=storage_id,
        )


@dataclass(frozen=True)
class QuotaPaymentLine:
    payment_method: str
    amount: Decimal
    bank_account_key: str | None = None


@dataclass(frozen=True)
class QuotaPaymentInput:
    quota_id: str
    original_transaction_id: int
    cash_session_id: int
    payments: tuple[QuotaPaymentLine, ...]

    @classmethod
    def from_payload(cls, payload: Any) -> "QuotaPaymentInput":
        reader = PayloadReader(payload)
        quota_id = reader.text("quota_id", required=True, max_length=64)
        original_transaction_id = reader.integer("original_transaction_id", required=True)
        cash_session_id = reader.integer("cash_session_id", required=True)

        payments = []
        for index, raw in enumerate(reader.items("payments", required=True)):
            line_reader = PayloadReader(raw, prefix=f"payments[{index}].")
            method = line_reader.choice("payment_method", PaymentMethod.ALL, required=True)
            amount = line_reader.number("amount", required=True, positive=True)
            bank_account_key = line_reader.text("bank_account_key", "bankAccountId", "bank_account_id", max_length=64)
            if line_reader.errors:
                reader.errors.extend(line_reader.errors)
                continue
            payments.append(QuotaPaymentLine(payment_method=method, amount=amount, bank_account_key=bank_account_key))

        reader.raise_if_errors()
        return cls(
            quota_id=quota_id,
            original_transaction_id=original_transaction_id,
            cash_session_id=cash_session_id,
            payments=tuple(payments),
        )
