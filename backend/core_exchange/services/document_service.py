# Overview: Service-layer operations for document numbering; year-scoped atomic counters.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


DOCUMENT_TYPE_ORDER = "ORDER"
DOCUMENT_TYPE_ENTRY_REPORT = "ENTRY_REPORT"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _bump(document_type: str, year: int) -> int | None:
    """Increment the counter row and return the number just claimed, or None if no row exists."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, year=year)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    year: int | None = None,
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next PREFIX-YYYY-NNNN number for a document type.

    The counter row for (document_type, year) is incremented in place, so two
    concurrent callers never read the same value. A new year has no row yet and
    starts at 1. Does not commit: the number is claimed by the caller's transaction.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    year = year or utcnow().year

    next_num = _bump(document_type, year)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, year=year, next_number=2))
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first
            next_num = _bump(document_type, year)
            if next_num is None:
                raise

    return f"{prefix}-{year}-{next_num:0{pad}d}"
