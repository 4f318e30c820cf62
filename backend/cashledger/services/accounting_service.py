# Overview: Hand-off point to the external accounting module for payments.

from __future__ import annotations

from typing import Callable, Optional

from flask import current_app

from ..models import LedgerTransaction, PaymentMethod
from cashledger.money_utils import money_json
from .audit_service import append_ledger_event


"""
The accounting module is an external collaborator. This core only hands it
each confirmed payment, inside the same unit of work, through a recorder
callable registered as app.extensions["accounting_recorder"]:

    recorder(transaction: LedgerTransaction, bank_account_key: str | None) -> None

A recorder that raises rolls the whole posting back.
"""

AccountingRecorder = Callable[[LedgerTransaction, Optional[str]], None]


def record_payment_event(transaction: LedgerTransaction, bank_account_key: str | None) -> None:
    """Default recorder: leaves an accounting.payment_recorded audit event."""
    if transaction.payment_method == PaymentMethod.CASH:
        account = current_app.config["CASH_ACCOUNT_CODE"]
    else:
        account = bank_account_key or transaction.payment_method

    append_ledger_event(
        event_type="accounting.payment_recorded",
        entity_type="ledger_transaction",
        entity_id=transaction.id,
        company_id=transaction.company_id,
        actor_user_id=transaction.user_id,
        point_of_sale_id=transaction.point_of_sale_id,
        cash_session_id=transaction.cash_session_id,
        ledger_transaction_id=transaction.id,
        payload={
            "account": account,
            "amount": money_json(transaction.total),
            "payment_method": transaction.payment_method,
            "related_transaction_id": transaction.related_transaction_id,
        },
    )


def get_recorder() -> AccountingRecorder:
    return current_app.extensions.get("accounting_recorder", record_payment_event)
