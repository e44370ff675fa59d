"""
Auto-Code Generator Service

Generates:
  - Order numbers:      ORD-{seq:04d}          (e.g. ORD-0001, ORD-0124)
  - Enquiry numbers:    ENQ-{time}{rand}       (fallback when none supplied)
  - Document numbers:   QUO-/INV-{time}{rand}  (fallback when none supplied)

Order numbers are globally sequential and must never repeat.  Allocation
is serialised through the ``order_sequences`` counter row: the first
statement of the allocation is an UPDATE on that row, which takes a write
lock (row lock on PostgreSQL, database RESERVED lock on SQLite) held until
the caller's transaction commits.  Inside the lock the next value is
max(counter, highest numeric suffix already stored) + 1, so numbers written
before the counter existed are respected.
"""

import logging
import re
import secrets
import time

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from workflow_crm.models import db
from workflow_crm.models.enquiry import ORDER_NUMBER_PREFIX, Enquiry, OrderSequence

logger = logging.getLogger(__name__)

ORDER_SEQUENCE_NAME = "order_number"
_SUFFIX_RE = re.compile(r"(\d+)$")


def format_order_number(seq: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{seq:04d}"


def parse_order_suffix(order_number: str | None) -> int | None:
    """Numeric tail of an order number (``ORD-0123`` → 123), or None."""
    if not order_number:
        return None
    match = _SUFFIX_RE.search(order_number.strip())
    return int(match.group(1)) if match else None


def highest_order_suffix() -> int:
    """Largest numeric suffix across every stored order number (0 if none)."""
    rows = (
        db.session.query(Enquiry.order_number)
        .filter(Enquiry.order_number.isnot(None))
        .all()
    )
    suffixes = [parse_order_suffix(r[0]) for r in rows]
    return max((s for s in suffixes if s is not None), default=0)


def _lock_sequence_row() -> bool:
    """Take the write lock on the counter row; False if the row is missing."""
    result = db.session.execute(
        update(OrderSequence)
        .where(OrderSequence.name == ORDER_SEQUENCE_NAME)
        .values(last_value=OrderSequence.last_value)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def _ensure_sequence_row():
    try:
        with db.session.begin_nested():
            db.session.add(OrderSequence(name=ORDER_SEQUENCE_NAME, last_value=0))
    except IntegrityError:
        # Another transaction created it first
        logger.debug("Order sequence row already present")


def allocate_order_number() -> str:
    """
    Reserve and return the next order number.

    Must run inside the caller's transaction, before any other write in
    that transaction, and the caller commits.  The reservation is released
    (and the number reused) if the transaction rolls back.
    """
    if not _lock_sequence_row():
        _ensure_sequence_row()
        _lock_sequence_row()

    seq_row = (
        db.session.query(OrderSequence)
        .filter_by(name=ORDER_SEQUENCE_NAME)
        .populate_existing()
        .one()
    )
    next_value = max(seq_row.last_value, highest_order_suffix()) + 1
    seq_row.last_value = next_value
    db.session.flush()

    order_number = format_order_number(next_value)
    logger.debug("Allocated order number %s", order_number)
    return order_number


def _time_token() -> str:
    return f"{int(time.time() * 1000) % 1_000_000:06d}{secrets.token_hex(2).upper()}"


def generate_enquiry_num() -> str:
    """Fallback enquiry number: ``ENQ-`` + millisecond clock tail + random hex."""
    return f"ENQ-{_time_token()}"


def generate_document_number(prefix: str) -> str:
    """Fallback quotation/invoice number, e.g. ``QUO-48213507A3``."""
    return f"{prefix.upper()}-{_time_token()}"
