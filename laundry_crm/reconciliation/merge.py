"""Fuzzy merge of order batches coming from different sources.

The file export and the API sync describe the same machine cycles with
timestamps a few minutes apart and no common identifier. Two orders are the
same cycle when they ran on the same machine on the same day, cost the same
(within a few cents) and started within a few minutes of each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from datetime import date, timedelta
from typing import Sequence

from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.matching import BucketedTimeIndex
from laundry_crm.foundation.records import Order, is_placeholder

logger = logging.getLogger(__name__)

#: Fields taken from the incoming record when the existing one lacks them.
FILLABLE_FIELDS = tuple(
    f.name for f in fields(Order) if f.name not in {"timestamp", "value"}
)


def machine_key(machine: str | None) -> str:
    """Normalise a machine label for bucketing ("007" and "7" collide)."""
    return (machine or "").strip().lstrip("0")


def _bucket_key(order: Order) -> tuple[date | None, str]:
    day = order.timestamp.date() if order.timestamp is not None else None
    return day, machine_key(order.machine)


@dataclass(frozen=True)
class MergeResult:
    """Merged order collection plus what happened to the incoming batch.

    Attributes
    ----------
    orders:
        Existing orders in their original positions (possibly filled in),
        followed by the incoming orders that matched nothing.
    added:
        Incoming orders appended as new.
    updated:
        Incoming orders that filled at least one missing field of a match.
    duplicates:
        Incoming orders that matched without contributing anything.
    skipped:
        Incoming orders without a timestamp or a finite value. They are
        dropped, never appended.
    """

    orders: list[Order]
    added: int = 0
    updated: int = 0
    duplicates: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "orders": [order.as_dict() for order in self.orders],
            "added": self.added,
            "updated": self.updated,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
        }


def fill_missing(existing: Order, incoming: Order) -> Order:
    """Return ``existing`` with placeholder fields taken from ``incoming``.

    Populated fields are never overwritten and a placeholder never replaces
    a real value, so applying the same incoming record twice is a no-op.
    """
    changes = {}
    for name in FILLABLE_FIELDS:
        current = getattr(existing, name)
        candidate = getattr(incoming, name)
        if is_placeholder(current) and not is_placeholder(candidate):
            changes[name] = candidate
    if "birth_date" in changes and existing.age is None and incoming.age is not None:
        changes["age"] = incoming.age
    return replace(existing, **changes) if changes else existing


def merge_orders(
    existing: Sequence[Order],
    incoming: Sequence[Order],
    config: EngineConfig | None = None,
) -> MergeResult:
    """Merge ``incoming`` into ``existing`` without creating duplicates.

    Existing orders keep their positions; unmatched incoming orders are
    appended in their original order and become match candidates straight
    away, so duplicates inside ``incoming`` collapse too. When several
    existing orders fit, the earliest one in time is the match. Incoming
    orders without a timestamp or a finite value are skipped. The operation
    is idempotent: merging the result with the same batch again changes
    nothing.

    Examples
    --------
    >>> from datetime import datetime
    >>> a = Order(None, datetime(2024, 5, 1, 10, 0), "Centro", "", "007",
    ...           "Unknown", "Unknown", "20.00")
    >>> b = Order(None, datetime(2024, 5, 1, 10, 4), "Centro", "", "7",
    ...           "Lavagem", "SUCESSO", "20.03")
    >>> result = merge_orders([a], [b])
    >>> len(result.orders), result.updated
    (1, 1)
    >>> result.orders[0].service
    'Lavagem'
    """
    config = config or DEFAULT_CONFIG
    tolerance = timedelta(minutes=config.merge_time_tolerance_minutes)
    value_tolerance = config.merge_value_tolerance

    merged: list[Order] = list(existing)
    index: BucketedTimeIndex[tuple[date | None, str], int] = BucketedTimeIndex.build(
        range(len(merged)),
        key_fn=lambda position: _bucket_key(merged[position]),
        time_fn=lambda position: merged[position].timestamp,
    )

    added = updated = duplicates = skipped = 0
    for order in incoming:
        if not order.is_valid():
            logger.debug("Skipping incoming order without timestamp or value: %s", order)
            skipped += 1
            continue

        def same_value(position: int) -> bool:
            candidate = merged[position].value
            if candidate is None or not candidate.is_finite():
                return False
            return abs(candidate - order.value) <= value_tolerance

        match = index.first(
            _bucket_key(order), order.timestamp, tolerance, accept=same_value
        )

        if match is None:
            merged.append(order)
            index.add(len(merged) - 1)
            added += 1
            continue

        filled = fill_missing(merged[match], order)
        if filled != merged[match]:
            merged[match] = filled
            updated += 1
        else:
            duplicates += 1

    logger.info(
        "Merged orders: %d existing, %d incoming -> %d added, %d updated, "
        "%d duplicates, %d skipped",
        len(existing),
        len(incoming),
        added,
        updated,
        duplicates,
        skipped,
    )
    return MergeResult(
        orders=merged,
        added=added,
        updated=updated,
        duplicates=duplicates,
        skipped=skipped,
    )
