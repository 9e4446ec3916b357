# Overview: Atomic allocation of per-day rental and bill numbers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow

RENTAL_DOCUMENT = "rental"
SALE_DOCUMENT = "sale"

RENTAL_PREFIX = "RENT"
SALE_PREFIX = "BILL"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    on: datetime | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate the next number for document_type on the given day.

    Runs inside the caller's transaction (no commit) so the number is only
    consumed if the document itself is committed. The counter row is bumped
    with a single UPDATE; the first number of a day inserts the row inside a
    savepoint and falls back to the UPDATE if a concurrent writer won.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    period = (on or utcnow()).strftime("%Y%m%d")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(document_type=document_type, period=period, next_number=2)
                )
            return f"{prefix}-{period}-{1:0{pad}d}"
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = db.session.execute(
        select(DocumentSequence.next_number).where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
    ).scalar_one()
    return f"{prefix}-{period}-{current - 1:0{pad}d}"
