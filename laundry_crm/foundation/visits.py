"""Group a customer's transactions into physical store visits.

A visit opens with a purchase and absorbs every later purchase made within a
fixed window of that FIRST purchase. The window is never re-armed by later
purchases: a customer who buys at 10:00, 12:00 and 13:30 with a 180 minute
window makes two visits (10:00-12:00 and 13:30), not one long one.

Two windows are used in the system. Basket and visit counting uses 180
minutes; cross-source enrichment uses a symmetric 120 minute window and lives
in :mod:`laundry_crm.reconciliation.reconciler`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Generic, Iterable, Protocol, Sequence, TypeVar

from laundry_crm.foundation.config import DEFAULT_CONFIG


class Timestamped(Protocol):
    timestamp: datetime | None
    value: Decimal | None

    def is_valid(self) -> bool: ...


T = TypeVar("T", bound=Timestamped)

#: Hour ranges for the four shifts of the day.
MORNING = "morning"
AFTERNOON = "afternoon"
EVENING = "evening"
LATE_NIGHT = "late_night"


def shift_of(moment: datetime) -> str:
    """Return the shift label for a timestamp."""
    hour = moment.hour
    if 6 <= hour < 12:
        return MORNING
    if 12 <= hour < 18:
        return AFTERNOON
    if hour >= 18:
        return EVENING
    return LATE_NIGHT


def whole_minutes_between(start: datetime, end: datetime) -> int:
    """Elapsed whole minutes from ``start`` to ``end``, truncated toward zero."""
    return math.trunc((end - start).total_seconds() / 60)


@dataclass(frozen=True)
class Visit(Generic[T]):
    """One customer visit.

    Attributes
    ----------
    start:
        Timestamp of the first transaction of the visit.
    transactions:
        Member transactions in chronological order (never empty).
    total_value:
        Sum of member transaction values.
    wash_count, dry_count:
        Cycles attributed to the members by the segmenter's counter.
    """

    start: datetime
    transactions: tuple[T, ...]
    total_value: Decimal
    wash_count: int = 0
    dry_count: int = 0

    def __post_init__(self) -> None:
        if not self.transactions:
            raise ValueError("A visit must contain at least one transaction")

    @property
    def end(self) -> datetime:
        return self.transactions[-1].timestamp

    @property
    def shift(self) -> str:
        return shift_of(self.start)

    @property
    def cycle_count(self) -> int:
        return self.wash_count + self.dry_count


class VisitSegmenter:
    """Split one customer's transactions into visits.

    Parameters
    ----------
    window_minutes:
        Maximum whole minutes between a visit's first transaction and any
        other member.
    counter:
        Optional callable returning an object with ``wash`` and ``dry``
        attributes for a transaction (typically
        :meth:`BasketEstimator.count_sale`). Without it visits carry zero
        cycle counts.
    """

    def __init__(
        self,
        window_minutes: int = DEFAULT_CONFIG.visit_window_minutes,
        counter: Callable[[T], object] | None = None,
    ) -> None:
        if window_minutes < 0:
            raise ValueError(f"window_minutes cannot be negative: {window_minutes}")
        self.window_minutes = window_minutes
        self.counter = counter

    def segment(self, transactions: Iterable[T]) -> list[Visit[T]]:
        ordered = sorted(
            (txn for txn in transactions if txn.is_valid()),
            key=lambda txn: txn.timestamp,
        )

        visits: list[Visit[T]] = []
        members: list[T] = []
        start: datetime | None = None
        total = Decimal("0")
        wash = dry = 0

        for txn in ordered:
            if start is not None:
                elapsed = whole_minutes_between(start, txn.timestamp)
                if not 0 <= elapsed <= self.window_minutes:
                    visits.append(Visit(start, tuple(members), total, wash, dry))
                    start = None

            if start is None:
                start = txn.timestamp
                members = []
                total = Decimal("0")
                wash = dry = 0

            members.append(txn)
            total += txn.value
            if self.counter is not None:
                counts = self.counter(txn)
                wash += counts.wash
                dry += counts.dry

        if start is not None:
            visits.append(Visit(start, tuple(members), total, wash, dry))
        return visits


def segment_visits(
    transactions: Sequence[T],
    window_minutes: int = DEFAULT_CONFIG.visit_window_minutes,
    counter: Callable[[T], object] | None = None,
) -> list[Visit[T]]:
    """Group transactions into visits.

    Examples
    --------
    >>> from datetime import datetime
    >>> from laundry_crm.foundation.records import Sale
    >>> sales = [
    ...     Sale("1", datetime(2024, 1, 1, 10, 0), "Centro", "ANA", 20),
    ...     Sale("2", datetime(2024, 1, 1, 10, 30), "Centro", "ANA", 15),
    ...     Sale("3", datetime(2024, 1, 10, 9, 0), "Centro", "ANA", 20),
    ... ]
    >>> [len(visit.transactions) for visit in segment_visits(sales)]
    [2, 1]
    """
    return VisitSegmenter(window_minutes, counter).segment(transactions)
