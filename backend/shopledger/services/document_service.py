# Overview: Human-readable document numbers backed by atomic per-type counters.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


SALE_DOCUMENT = ("SALE", "SALE")
PURCHASE_DOCUMENT = ("PURCHASE", "PUR")


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _advance(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(document_type: str, prefix: str, pad: int | None = None) -> str:
    """
    Allocate the next number for document_type, e.g. "SALE-000001".

    Must run inside the caller's atomic scope: the counter increment commits
    or rolls back together with the document that consumes it, so numbers
    stay unique and a failed sale leaves no gap.

    The counter row is created on first use inside a savepoint; losing the
    insert race to another writer falls back to the atomic increment.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")
    if pad is None:
        pad = int(current_app.config.get("DOCUMENT_NUMBER_PAD", 6))

    number = _advance(document_type)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            number = 1
        except IntegrityError:
            number = _advance(document_type)
            if number is None:
                raise DocumentSequenceError(f"Could not allocate a {document_type} number")

    return f"{prefix}-{number:0{pad}d}"


def next_sale_number() -> str:
    return next_document_number(*SALE_DOCUMENT)


def next_purchase_number() -> str:
    return next_document_number(*PURCHASE_DOCUMENT)
