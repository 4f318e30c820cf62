# Overview: Flask API routes for cash sessions and drawer movements; parses input and returns JSON responses.

# backend/cashledger/routes/cash_sessions.py
"""
Cash Session API Routes

WHY: A point of sale accepts cash only inside an OPEN cash session. These
endpoints open and close sessions and post every drawer movement.

DESIGN:
- Session lifecycle: open -> close (terminal, never reopened)
- One opening transaction per session
- Deposits are guarded by the company cash balance; withdrawals are not
- Every error answers {"error", "kind", ...details} with a stable kind
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import audit_service, cash_session_service, ledger_service, movement_service, sale_service
from ..validation import (
    CashMovementInput,
    CloseSessionInput,
    OpeningInput,
    OpenSessionInput,
    SaleInput,
)
from ..money_utils import money_json


cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


def _error(e: LedgerError):
    return jsonify(e.to_dict()), e.status_code


def _internal_error():
    return jsonify({"error": "Internal server error", "kind": "INTERNAL"}), 500


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@cash_sessions_bp.post("")
def open_session_route():
    """
    Open a cash session on a point of sale.

    Request body:
    {
        "user_name": "cashier1",
        "point_of_sale_id": 1,
        "opening_amount": 50000   (optional; posts the opening transaction too)
    }
    """
    try:
        data = OpenSessionInput.from_payload(request.get_json(silent=True))
        session, opening_tx = cash_session_service.open_session(data)
        return jsonify({
            "cash_session": session.to_dict(),
            "cash_session_id": session.id,
            "status": session.status,
            "opening_amount": money_json(session.opening_amount),
            "opening_transaction": opening_tx.to_dict() if opening_tx else None,
        }), 201

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to open cash session")
        return _internal_error()


@cash_sessions_bp.get("")
def list_sessions_route():
    try:
        sessions = cash_session_service.list_sessions(
            point_of_sale_id=request.args.get("point_of_sale_id", type=int),
            status=(request.args.get("status") or "").upper() or None,
            limit=request.args.get("limit", default=50, type=int),
        )
        return jsonify({"cash_sessions": [s.to_dict() for s in sessions]}), 200

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list cash sessions")
        return _internal_error()


@cash_sessions_bp.get("/<int:cash_session_id>")
def get_session_route(cash_session_id: int):
    """Session with its transactions, expected tenders and audit events."""
    try:
        session = cash_session_service.get_session(cash_session_id)
        transactions = ledger_service.list_transactions(cash_session_id=session.id, limit=500)
        breakdown = ledger_service.tender_breakdown(session)
        events = audit_service.list_events(cash_session_id=session.id)
        return jsonify({
            "cash_session": session.to_dict(),
            "transactions": [tx.to_dict() for tx in transactions],
            "expected": {key: money_json(value) for key, value in breakdown.items()},
            "events": [ev.to_dict() for ev in events],
        }), 200

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to get cash session")
        return _internal_error()


@cash_sessions_bp.post("/opening-transaction")
def opening_transaction_route():
    """
    Post the opening float of a session (once per session).

    Request body:
    {
        "cash_session_id": 1,
        "user_name": "cashier1",
        "opening_amount": 50000
    }
    """
    try:
        data = OpeningInput.from_payload(request.get_json(silent=True))
        tx, session = cash_session_service.post_opening_transaction(data)
        return jsonify({
            "transaction_id": tx.id,
            "transaction": tx.to_dict(),
            "cash_session": session.to_dict(),
        }), 201

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to post opening transaction")
        return _internal_error()


@cash_sessions_bp.post("/close")
def close_session_route():
    """
    Count the drawer and close the session.

    Request body:
    {
        "user_name": "cashier1",
        "point_of_sale_id": 1,
        "cash_session_id": 1,
        "actual_cash": 60000,
        "voucher_debit_amount": 0,
        "voucher_credit_amount": 0,
        "transfer_amount": 0,
        "check_amount": 0,
        "other_amount": 0,
        "notes": "optional"
    }
    """
    try:
        data = CloseSessionInput.from_payload(request.get_json(silent=True))
        result = cash_session_service.close_session(data)
        return jsonify({
            "cash_session": result.session.to_dict(),
            "closing": result.closing_json(),
        }), 200

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to close cash session")
        return _internal_error()


# =============================================================================
# DRAWER MOVEMENTS
# =============================================================================

def _movement_response(tx, session):
    return jsonify({
        "transaction": tx.to_dict(),
        "expected_amount": money_json(session.expected_amount),
    }), 201


@cash_sessions_bp.post("/cash-deposits")
def cash_deposit_route():
    """
    Deposit cash from the company cash account into the drawer.

    Request body:
    {"user_name", "point_of_sale_id", "cash_session_id", "amount", "reason"?}
    """
    try:
        data = CashMovementInput.from_payload(request.get_json(silent=True))
        tx, session = movement_service.post_deposit(data)
        return _movement_response(tx, session)

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to post cash deposit")
        return _internal_error()


@cash_sessions_bp.post("/cash-withdrawals")
def cash_withdrawal_route():
    try:
        data = CashMovementInput.from_payload(request.get_json(silent=True))
        tx, session = movement_service.post_withdrawal(data)
        return _movement_response(tx, session)

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to post cash withdrawal")
        return _internal_error()


@cash_sessions_bp.post("/sales")
def create_sale_route():
    """
    Post a confirmed POS sale.

    Request body:
    {
        "user_name": "cashier1",
        "point_of_sale_id": 1,
        "cash_session_id": 1,
        "payment_method": "CASH",
        "lines": [{"product_variant_id": 1, "quantity": 2, "unit_price": 1000}],
        "customer_id"?, "document_number"?, "amount_paid"?, "change_amount"?, ...
    }
    """
    try:
        data = SaleInput.from_payload(request.get_json(silent=True))
        tx = sale_service.create_sale(data)
        payload = tx.to_dict(include_lines=True)
        return jsonify({"transaction": payload, "lines": payload["lines"]}), 201

    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return _internal_error()
