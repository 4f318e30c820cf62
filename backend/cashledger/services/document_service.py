# Overview: Service-layer operations for document numbers; atomic per-type sequences.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


# document_type -> printed prefix
DOCUMENT_PREFIXES = {
    "CASH_SESSION_OPENING": "CSO",
    "CASH_SESSION_DEPOSIT": "ICS",
    "CASH_SESSION_WITHDRAWAL": "RCS",
    "SALE": "VTA",
    "PAYMENT_IN": "PIE",
}

QUOTA_PAYMENT_SEQUENCE = "QUOTA_PAYMENT"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_sequence_value(document_type: str) -> int:
    """
    Atomically allocate the next value of a per-type counter.

    Increments in place with UPDATE so concurrent writers serialize on the
    sequence row. The first allocation inserts the row inside a savepoint so a
    racing insert does not abort the caller's unit of work.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(document_type: str, prefix: str | None = None, pad: int = 8) -> str:
    """PREFIX-00000042 style number for a transaction type."""
    prefix = prefix or DOCUMENT_PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"No document prefix configured for {document_type}")
    number = next_sequence_value(document_type)
    return f"{prefix}-{number:0{pad}d}"


def quota_payment_document_number(original_document_number: str) -> str:
    """
    QPY-{original}-{n}: keeps the original document parseable from the
    prefix while the monotonic suffix guarantees uniqueness.
    """
    number = next_sequence_value(QUOTA_PAYMENT_SEQUENCE)
    return f"QPY-{original_document_number}-{number}"
