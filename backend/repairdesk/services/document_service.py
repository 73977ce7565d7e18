# Overview: Generated document numbers (invoices, service requests).

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


INVOICE_PREFIX = "INV"
SERVICE_REQUEST_PREFIX = "SR"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _sequence_key(prefix: str, when: datetime | None) -> str:
    when = when or utcnow()
    return f"{prefix}-{when:%y%m%d}"


def next_document_number(*, prefix: str, when: datetime | None = None, pad: int = 4) -> str:
    """
    Allocate the next number for prefix on the given day: PREFIX-YYMMDD-NNNN.

    Runs inside the caller's transaction so the number is only consumed if
    the document that uses it is committed. The increment is a single
    UPDATE so concurrent writers serialize on the sequence row.
    """
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    key = _sequence_key(prefix, when)
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.sequence_key == key)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(sequence_key=key, next_number=2))
            return f"{key}-{1:0{pad}d}"
        except IntegrityError:
            # Another writer created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate number for {key}")

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(sequence_key=key)
        .scalar()
    )
    return f"{key}-{current - 1:0{pad}d}"


def peek_document_number(*, prefix: str, when: datetime | None = None, pad: int = 4) -> str:
    """Return the number next_document_number would hand out, without consuming it."""
    key = _sequence_key(prefix, when)
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(sequence_key=key)
        .scalar()
    )
    return f"{key}-{(current or 1):0{pad}d}"
