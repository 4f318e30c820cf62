# Overview: Price/tax calculator used by the sale builder.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..extensions import db
from ..models import Tax
from cashledger.errors import ValidationError
from cashledger.money_utils import ZERO, round_money, round_rate, to_decimal


@dataclass(frozen=True)
class ComputedPrice:
    net_price: Decimal
    gross_price: Decimal
    total_tax_rate: Decimal  # accumulated percentage, 19 => 19%


def total_tax_rate(tax_rates: Iterable) -> Decimal:
    """Sum of percentage rates; missing or non-numeric entries count as 0."""
    total = ZERO
    for rate in tax_rates:
        value = to_decimal(rate)
        if value is not None:
            total += value
    return round_rate(total)


def compute_price_with_taxes(*, tax_rates: Iterable, net_price=None, gross_price=None) -> ComputedPrice:
    """
    Net/gross price pair from one of them and a list of tax rates.

    The rate sum keeps 4 places; only the derived prices round to 2.
    """
    rate = total_tax_rate(tax_rates)
    multiplier = 1 + rate / 100

    net = to_decimal(net_price)
    gross = to_decimal(gross_price)
    if net is None and gross is None:
        raise ValidationError("net_price or gross_price is required to compute a price")

    if net is not None:
        resolved_net = net
        resolved_gross = net * multiplier
    elif multiplier == 0:
        resolved_net = gross
        resolved_gross = gross
    else:
        resolved_net = gross / multiplier
        resolved_gross = gross

    return ComputedPrice(
        net_price=round_money(resolved_net),
        gross_price=round_money(resolved_gross),
        total_tax_rate=rate,
    )


def get_tax(tax_id: int) -> Tax | None:
    return db.session.get(Tax, tax_id)


def active_tax_rates(tax_ids: Iterable[int]) -> list[Decimal]:
    ids = [tax_id for tax_id in tax_ids if tax_id is not None]
    if not ids:
        return []
    taxes = db.session.query(Tax).filter(Tax.id.in_(ids), Tax.is_active.is_(True)).all()
    return [round_rate(tax.rate) for tax in taxes]
