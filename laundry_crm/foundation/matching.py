"""Bucketed nearest-in-time matching.

Both reconciliation problems in the engine (attaching orders to sales and
deduplicating two order streams) have the same shape: there is no shared key,
so candidates are narrowed by a coarse bucket key (calendar day, machine),
then by a time window, then by a domain-specific acceptance test. The
reconciler takes the closest surviving candidate in time, the merge takes the
first one in time order.

Buckets are kept sorted by time so a window lookup is a binary search plus a
short forward scan, which keeps batches of tens of thousands of records far
from quadratic.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta
from typing import Callable, Generic, Hashable, Iterable, Iterator, TypeVar

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class BucketedTimeIndex(Generic[K, T]):
    """Time-sorted candidate lists grouped by a bucket key.

    Parameters
    ----------
    key_fn:
        Returns the bucket key for an item.
    time_fn:
        Returns the item's timestamp. Items whose timestamp is None are not
        indexed.
    """

    def __init__(
        self,
        key_fn: Callable[[T], K],
        time_fn: Callable[[T], datetime | None],
    ) -> None:
        self._key_fn = key_fn
        self._time_fn = time_fn
        self._times: dict[K, list[datetime]] = {}
        self._items: dict[K, list[T]] = {}

    @classmethod
    def build(
        cls,
        items: Iterable[T],
        key_fn: Callable[[T], K],
        time_fn: Callable[[T], datetime | None],
    ) -> "BucketedTimeIndex[K, T]":
        index = cls(key_fn, time_fn)
        for item in items:
            index.add(item)
        return index

    def add(self, item: T) -> bool:
        """Insert an item, keeping its bucket sorted. Returns False if unindexable."""
        moment = self._time_fn(item)
        if moment is None:
            return False
        key = self._key_fn(item)
        times = self._times.setdefault(key, [])
        items = self._items.setdefault(key, [])
        # bisect_right keeps equal timestamps in insertion order
        position = bisect_right(times, moment)
        times.insert(position, moment)
        items.insert(position, item)
        return True

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._items.values())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def bucket(self, key: K) -> list[T]:
        return list(self._items.get(key, ()))

    def window(self, key: K, start: datetime, end: datetime) -> Iterator[T]:
        """Yield items of a bucket with ``start <= time <= end`` in time order."""
        times = self._times.get(key)
        if not times:
            return
        items = self._items[key]
        position = bisect_left(times, start)
        while position < len(times) and times[position] <= end:
            yield items[position]
            position += 1

    def nearest(
        self,
        key: K,
        at: datetime,
        tolerance: timedelta,
        accept: Callable[[T], bool] | None = None,
    ) -> T | None:
        """Return the accepted candidate closest to ``at`` within ``tolerance``.

        Ties on distance go to the first candidate in time order.
        """
        best: T | None = None
        best_distance: timedelta | None = None
        for item in self.window(key, at - tolerance, at + tolerance):
            if accept is not None and not accept(item):
                continue
            distance = abs(self._time_fn(item) - at)
            if best_distance is None or distance < best_distance:
                best = item
                best_distance = distance
        return best

    def first(
        self,
        key: K,
        at: datetime,
        tolerance: timedelta,
        accept: Callable[[T], bool] | None = None,
    ) -> T | None:
        """Return the earliest accepted candidate within ``tolerance`` of ``at``."""
        for item in self.window(key, at - tolerance, at + tolerance):
            if accept is None or accept(item):
                return item
        return None
