# Overview: Unit-of-work and row-locking helpers shared by every write path.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from cashledger.errors import ConflictError, InternalError, LedgerError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Start the write transaction for the current unit of work.

    On SQLite, issue BEGIN IMMEDIATE so two writers serialize at the start of
    the unit instead of both reading the same snapshot and racing on insert.
    Other backends rely on lock_for_update() row locks.
    """
    if db.session.get_bind().dialect.name != "sqlite":
        return
    if not current_app.config.get("SQLITE_BEGIN_IMMEDIATE", True):
        return

    dbapi_connection = db.session.connection().connection.dbapi_connection
    if not dbapi_connection.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def atomic(conflict_message: str = "Conflicting concurrent write"):
    """
    Run a block as one all-or-nothing unit of work.

    - LedgerError: rolled back and re-raised unchanged
    - IntegrityError (unique indexes): rolled back, raised as ConflictError
    - any other SQLAlchemyError: rolled back, raised as InternalError

    Nothing is retried here. Money postings are never replayed automatically.
    """
    begin_write()
    try:
        yield db.session
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Unit of work failed")
        raise InternalError() from exc
    except Exception:
        db.session.rollback()
        raise
