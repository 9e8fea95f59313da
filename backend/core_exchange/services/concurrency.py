# Overview: Transaction boundaries and row locking shared by the ledger and matchers.

from __future__ import annotations

import logging

from sqlalchemy.exc import InterfaceError, OperationalError

from ..errors import StoreUnavailable
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_in_transaction(func):
    """
    Execute func() as one unit of work: commit on success, roll back on any failure.

    Store transport failures surface as StoreUnavailable. Nothing is retried;
    the caller decides whether to try again.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except (OperationalError, InterfaceError) as exc:
        db.session.rollback()
        logger.error("Store failure, transaction rolled back: %s", exc)
        raise StoreUnavailable("Store unavailable, operation rolled back") from exc
    except Exception:
        db.session.rollback()
        raise
