"""
Per-branch, per-day order sequence.

The counter row is incremented with a single ``UPDATE ... SET last_value =
last_value + 1`` inside the caller's transaction. The row lock taken by that
UPDATE serializes concurrent creators for the same branch and day until the
order commits; a rolled-back order releases its number, leaving at most a gap.

The first order of a day inserts the row. Two creators racing on that insert
collide on the ``(branch_id, business_date)`` unique constraint and the loser
gets an ``IntegrityError``, which the order service retries.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shared.config.constants import Limits
from rest_api.models import OrderSequence


def format_order_code(branch_code: str, business_date: date, sequence: int) -> str:
    """
    ``{BRANCH_CODE}-{YYYYMMDD}-{SEQ}`` with the sequence zero-padded to 4.

    >>> format_order_code("CAS", date(2025, 10, 28), 2)
    'CAS-20251028-0002'
    """
    width = Limits.ORDER_CODE_SEQUENCE_WIDTH
    return f"{branch_code}-{business_date:%Y%m%d}-{sequence:0{width}d}"


class SequenceAllocator:
    """Allocates order sequence numbers inside the caller's transaction."""

    def __init__(self, db: Session):
        self._db = db

    def next_value(self, branch_id: int, business_date: date) -> int:
        """
        Increment and return the counter for ``(branch_id, business_date)``.

        Must be called inside the transaction that inserts the order.
        Raises ``IntegrityError`` when a concurrent transaction created the
        day's counter row first.
        """
        result = self._db.execute(
            update(OrderSequence)
            .where(
                OrderSequence.branch_id == branch_id,
                OrderSequence.business_date == business_date,
            )
            .values(last_value=OrderSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # First order of the day for this branch
            self._db.add(
                OrderSequence(branch_id=branch_id, business_date=business_date, last_value=1)
            )
            self._db.flush()
            return 1

        return self._db.scalar(
            select(OrderSequence.last_value).where(
                OrderSequence.branch_id == branch_id,
                OrderSequence.business_date == business_date,
            )
        )

    def allocate_code(self, branch_id: int, branch_code: str, business_date: date) -> str:
        """Next order code for the branch and day."""
        return format_order_code(branch_code, business_date, self.next_value(branch_id, business_date))
