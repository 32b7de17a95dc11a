# Overview: Document number allocation for tickets.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import TransientConflict

TICKET_DOCUMENT_TYPE = "TICKET"
TICKET_PREFIX = "TICKET"


def ensure_sequence(document_type: str) -> DocumentSequence:
    """Create the sequence row if missing. Idempotent; does not commit."""
    seq = db.session.query(DocumentSequence).filter_by(document_type=document_type).first()
    if seq:
        return seq
    seq = DocumentSequence(document_type=document_type, next_number=1)
    db.session.add(seq)
    db.session.flush()
    return seq


def _bump(document_type: str) -> int:
    """Increment the sequence row; returns the number of rows touched (0 or 1)."""
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    return db.session.execute(stmt).rowcount


def next_document_number(*, document_type: str, prefix: str, pad: int | None = None) -> str:
    """
    Allocate the next number for a document type inside the caller's transaction.

    The UPDATE takes the row lock, so concurrent allocators serialize and the
    number is released again if the enclosing transaction rolls back.
    """
    if pad is None:
        pad = current_app.config.get("TICKET_NUMBER_PAD", 6)

    if _bump(document_type):
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        # First allocation ever; `flask system init-db` seeds this row up front.
        seq = DocumentSequence(document_type=document_type, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Another transaction seeded the row first; the retry takes the UPDATE path
            raise TransientConflict(f"Sequence {document_type} was created concurrently") from exc
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_ticket_number() -> str:
    return next_document_number(document_type=TICKET_DOCUMENT_TYPE, prefix=TICKET_PREFIX)
