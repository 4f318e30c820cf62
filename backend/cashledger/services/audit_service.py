# Overview: Append-only audit trail of cash and ledger events.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import LedgerEvent
from cashledger.time_utils import utcnow


"""
Audit log invariants

- Append-only. No updates or deletes of existing events.
- No domain logic here; callers decide what happened.
- Events are written inside the same unit of work as the change they record,
  so a rolled back posting leaves no event behind.
"""


def append_ledger_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    company_id: int | None = None,
    actor_user_id: int | None = None,
    point_of_sale_id: int | None = None,
    cash_session_id: int | None = None,
    ledger_transaction_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    ev = LedgerEvent(
        company_id=company_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        point_of_sale_id=point_of_sale_id,
        cash_session_id=cash_session_id,
        ledger_transaction_id=ledger_transaction_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(*, cash_session_id: int | None = None, event_type: str | None = None, limit: int = 100) -> list[LedgerEvent]:
    q = LedgerEvent.query
    if cash_session_id is not None:
        q = q.filter(LedgerEvent.cash_session_id == cash_session_id)
    if event_type:
        q = q.filter(LedgerEvent.event_type == event_type)
    return q.order_by(LedgerEvent.occurred_at.asc(), LedgerEvent.id.asc()).limit(limit).all()
