# Overview: Flask API routes for payments; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..money_utils import money_json
from ..services import movement_service
from ..validation import QuotaPaymentInput


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/pay-quota")
def pay_quota_route():
    """
    Settle an installment (quota) of a credit sale.

    Request body:
    {
        "quota_id": "Q-1",
        "original_transaction_id": 10,
        "cash_session_id": 1,
        "payments": [{"payment_method": "CASH", "amount": 5000, "bank_account_key": null}]
    }
    """
    try:
        data = QuotaPaymentInput.from_payload(request.get_json(silent=True))
        payments, session = movement_service.pay_quota(data)
        return jsonify({
            "success": True,
            "message": "Quota payment recorded",
            "transactions": [tx.to_dict() for tx in payments],
            "expected_amount": money_json(session.expected_amount),
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to pay quota")
        return jsonify({"error": "Internal server error", "kind": "INTERNAL"}), 500
