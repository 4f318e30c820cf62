# backend/cashledger/routes/system.py
"""
Liveness endpoint for load balancers and deploy checks.

The probe does one store round trip that also reports how many drawers are
currently open, so an operator can spot a register left open overnight.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func

from ..extensions import db
from ..models import CashSession, CashSessionStatus
from cashledger.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def probe_store() -> dict:
    started = time.perf_counter()
    try:
        open_sessions = (
            db.session.query(func.count(CashSession.id))
            .filter(CashSession.status == CashSessionStatus.OPEN)
            .scalar()
        )
    except Exception:
        current_app.logger.exception("Store probe failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "details": {"open_cash_sessions": open_sessions},
    }


@system_bp.get("/health")
def health():
    """200 when the store answers, 503 otherwise."""
    database = probe_store()
    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "cash_account_code": current_app.config["CASH_ACCOUNT_CODE"],
        "checks": {"database": database},
    }), (200 if database["status"] == "healthy" else 503)
