# Overview: Service-layer operations for order numbering; atomic per-date counters.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence
from ..time_utils import utctoday

ORDER_PREFIX = "ORD"
ORDER_NUMBER_PAD = 4


def _increment(sequence_key: str, date_key: str) -> int | None:
    """Bump the counter; returns the number reserved, or None when no row exists yet."""
    stmt = (
        update(OrderSequence)
        .where(
            OrderSequence.sequence_key == sequence_key,
            OrderSequence.date_key == date_key,
        )
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(sequence_key=sequence_key, date_key=date_key)
        .scalar()
    )
    return current - 1


def allocate_number(sequence_key: str, date_key: str) -> int:
    """
    Reserve the next number for (sequence_key, date_key).

    Must run inside the caller's transaction so the number is given back if
    that transaction rolls back. The first allocation of a day inserts the
    counter row under a savepoint; a concurrent insert of the same row is
    resolved by retrying the increment.
    """
    number = _increment(sequence_key, date_key)
    if number is not None:
        return number

    try:
        with db.session.begin_nested():
            db.session.add(OrderSequence(sequence_key=sequence_key, date_key=date_key, next_number=2))
        return 1
    except IntegrityError:
        number = _increment(sequence_key, date_key)
        if number is None:
            raise
        return number


def format_order_number(on: date, number: int) -> str:
    return f"{ORDER_PREFIX}-{on.strftime('%Y%m%d')}-{number:0{ORDER_NUMBER_PAD}d}"


def next_order_number(on: date | None = None) -> str:
    """
    Allocate the next order number, e.g. "ORD-20261018-0001".

    The date is the UTC calendar date; numbering restarts at 0001 each day.
    Does not commit.
    """
    on = on or utctoday()
    number = allocate_number(ORDER_PREFIX, on.strftime("%Y%m%d"))
    return format_order_number(on, number)


def peek_next_order_number(on: date | None = None) -> str:
    """Number the next order would get, without reserving it."""
    on = on or utctoday()
    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(sequence_key=ORDER_PREFIX, date_key=on.strftime("%Y%m%d"))
        .scalar()
    )
    return format_order_number(on, current or 1)
