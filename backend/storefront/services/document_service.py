# Overview: Order number allocation (PREFIX-YYYYMMDD-NNN).

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderNumberSequence
from ..time_utils import utcnow


def format_order_number(prefix: str, date_key: str, number: int) -> str:
    return f"{prefix}-{date_key}-{number:03d}"


def _current(prefix: str, date_key: str) -> int:
    return (
        db.session.query(OrderNumberSequence.next_number)
        .filter_by(prefix=prefix, date_key=date_key)
        .scalar()
    )


def next_order_number(prefix: str, now: datetime | None = None) -> str:
    """
    Atomically allocate the next order number for the day.

    Runs inside the caller's transaction; the number is only consumed if
    that transaction commits. More than 999 orders a day widen NNN.
    """
    date_key = (now or utcnow()).strftime("%Y%m%d")

    stmt = (
        update(OrderNumberSequence)
        .where(
            OrderNumberSequence.prefix == prefix,
            OrderNumberSequence.date_key == date_key,
        )
        .values(next_number=OrderNumberSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return format_order_number(prefix, date_key, _current(prefix, date_key) - 1)

    # First order of the day. A concurrent first insert loses on the unique
    # constraint; only the savepoint is rolled back, then the UPDATE path runs.
    try:
        with db.session.begin_nested():
            db.session.add(OrderNumberSequence(prefix=prefix, date_key=date_key, next_number=2))
        return format_order_number(prefix, date_key, 1)
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return format_order_number(prefix, date_key, _current(prefix, date_key) - 1)
