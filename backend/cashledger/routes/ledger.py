# Overview: Flask API routes for ledger reads; balances and transaction lookups.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError, ValidationError
from ..money_utils import money_json, quantity_json
from ..services import ledger_service

"""
Balance semantics:
- Balances are derived on every request from CONFIRMED transactions; nothing is cached.
- account=cash (or the configured cash account code) needs company_id.
- account=cash_drawer needs cash_session_id.
- account=inventory is in base units, optionally filtered by variant/branch/company.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/balance")
def balance_route():
    try:
        account = request.args.get("account") or ledger_service.ACCOUNT_CASH
        company_id = request.args.get("company_id", type=int)
        cash_session_id = request.args.get("cash_session_id", type=int)
        product_variant_id = request.args.get("product_variant_id", type=int)
        branch_id = request.args.get("branch_id", type=int)

        if account in (ledger_service.ACCOUNT_CASH, current_app.config["CASH_ACCOUNT_CODE"]) and company_id is None:
            raise ValidationError("company_id is required for the cash account")

        balance = ledger_service.compute_account_balance(
            account,
            company_id=company_id,
            cash_session_id=cash_session_id,
            product_variant_id=product_variant_id,
            branch_id=branch_id,
        )
        is_inventory = account == ledger_service.ACCOUNT_INVENTORY
        return jsonify({
            "account": account,
            "balance": quantity_json(balance) if is_inventory else money_json(balance),
            "company_id": company_id,
            "cash_session_id": cash_session_id,
            "product_variant_id": product_variant_id,
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute balance")
        return jsonify({"error": "Internal server error", "kind": "INTERNAL"}), 500


@ledger_bp.get("/transactions")
def list_transactions_route():
    try:
        transactions = ledger_service.list_transactions(
            cash_session_id=request.args.get("cash_session_id", type=int),
            company_id=request.args.get("company_id", type=int),
            transaction_type=(request.args.get("transaction_type") or "").upper() or None,
            status=(request.args.get("status") or "").upper() or None,
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({"transactions": [tx.to_dict() for tx in transactions]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error", "kind": "INTERNAL"}), 500


@ledger_bp.get("/transactions/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        tx = ledger_service.get_transaction(transaction_id)
        return jsonify({"transaction": tx.to_dict(include_lines=True)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get transaction")
        return jsonify({"error": "Internal server error", "kind": "INTERNAL"}), 500
