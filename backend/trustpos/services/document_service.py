# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from trustpos.time_utils import utcnow


def _increment(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
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


def allocate_sequence(document_type: str) -> int:
    """
    Atomically allocate the next number for a document type.

    Runs inside the caller's transaction and never commits. The first row
    for a type is created inside a savepoint, so losing an insert race to a
    concurrent transaction only rolls back the savepoint.
    """
    if not document_type:
        raise ValueError("document_type is required")

    next_num = _increment(document_type)
    if next_num is not None:
        return next_num

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        return 1
    except IntegrityError:
        next_num = _increment(document_type)
        if next_num is None:
            raise
        return next_num


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Format: PREFIX-YYYYMMDD-NNNNNN

    The date is informational; uniqueness comes from the monotonic sequence.
    """
    seq = allocate_sequence(document_type)
    return f"{prefix}-{utcnow():%Y%m%d}-{seq:0{pad}d}"
