"""Attach machine-level cycle detail from standalone orders onto sales.

The order feed knows which machine ran which service; the sales export knows
who paid and how much. Neither shares an identifier with the other, so each
order is matched to the sale closest in time on the same calendar day that is
compatible on store, customer name and value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Iterable, Sequence

from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.matching import BucketedTimeIndex
from laundry_crm.foundation.records import (
    Order,
    Sale,
    is_walk_in,
    normalize_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome counts of a reconciliation run.

    Attributes
    ----------
    enriched:
        Orders attached to a sale during this run.
    already_linked:
        Orders whose sale already carried an item with the same id.
    unmatched:
        Valid orders for which no compatible sale was found.
    skipped:
        Orders without a timestamp or a finite value.
    demographics_merged:
        Sales that received a birth date from an order.
    """

    enriched: int = 0
    already_linked: int = 0
    unmatched: int = 0
    skipped: int = 0
    demographics_merged: int = 0

    @property
    def total(self) -> int:
        return self.enriched + self.already_linked + self.unmatched + self.skipped

    def as_dict(self) -> dict[str, int]:
        return {
            "enriched": self.enriched,
            "already_linked": self.already_linked,
            "unmatched": self.unmatched,
            "skipped": self.skipped,
            "demographics_merged": self.demographics_merged,
            "total": self.total,
        }


@dataclass(frozen=True, slots=True)
class _IndexedSale:
    sale: Sale
    store: str
    customer: str
    first_name: str


def _first_token(name: str) -> str:
    return name.split(" ")[0] if name else ""


class OrderReconciler:
    """Match orders to sales using a day-bucketed, time-sorted sale index.

    The sales passed in are enriched in place: matched orders are appended
    to ``Sale.items`` (deduplicated by item id) and missing birth dates are
    copied over.
    """

    def __init__(
        self, sales: Iterable[Sale], config: EngineConfig = DEFAULT_CONFIG
    ) -> None:
        self.config = config
        valid = [sale for sale in sales if sale.is_valid()]
        self.multi_store = len({normalize_name(sale.store) for sale in valid}) > 1
        self._index: BucketedTimeIndex[date, _IndexedSale] = BucketedTimeIndex.build(
            (self._prepare(sale) for sale in valid),
            key_fn=lambda entry: entry.sale.timestamp.date(),
            time_fn=lambda entry: entry.sale.timestamp,
        )
        logger.debug(
            "Indexed %d sales (multi_store=%s)", len(self._index), self.multi_store
        )

    def _prepare(self, sale: Sale) -> _IndexedSale:
        customer = "" if is_walk_in(sale.customer) else normalize_name(sale.customer)
        return _IndexedSale(
            sale=sale,
            store=normalize_name(sale.store) if self.multi_store else "",
            customer=customer,
            first_name=_first_token(customer),
        )

    def find_sale(self, order: Order) -> Sale | None:
        """Return the sale an order belongs to, or None."""
        if not order.is_valid():
            return None

        store = normalize_name(order.store) if self.multi_store else ""
        customer = "" if is_walk_in(order.customer) else normalize_name(order.customer)
        first_name = _first_token(customer)
        tolerance = self.config.reconcile_value_tolerance

        def compatible(entry: _IndexedSale) -> bool:
            if self.multi_store and entry.store != store:
                return False
            if customer and entry.customer != customer and entry.first_name != first_name:
                return False
            return order.value <= entry.sale.value + tolerance

        match = self._index.nearest(
            order.timestamp.date(),
            order.timestamp,
            timedelta(minutes=self.config.enrichment_window_minutes),
            accept=compatible,
        )
        return match.sale if match is not None else None

    def reconcile(
        self,
        orders: Sequence[Order],
        progress: Callable[[int, int], None] | None = None,
    ) -> ReconciliationResult:
        """Attach every matchable order to its sale.

        Parameters
        ----------
        orders:
            Orders to attach.
        progress:
            Optional callback invoked as ``progress(done, total)`` after each
            chunk of ``config.reconcile_chunk_size`` orders.
        """
        enriched = already_linked = unmatched = skipped = demographics = 0
        total = len(orders)
        chunk_size = self.config.reconcile_chunk_size

        for chunk_start in range(0, total, chunk_size):
            for order in orders[chunk_start : chunk_start + chunk_size]:
                if not order.is_valid():
                    skipped += 1
                    continue

                sale = self.find_sale(order)
                if sale is None:
                    unmatched += 1
                    continue

                if sale.attach_item(order.as_cycle_item()):
                    enriched += 1
                else:
                    already_linked += 1

                if order.birth_date is not None and sale.birth_date is None:
                    sale.birth_date = order.birth_date
                    sale.age = order.age
                    demographics += 1

            done = min(chunk_start + chunk_size, total)
            logger.debug("Reconciled %d/%d orders", done, total)
            if progress is not None:
                progress(done, total)

        result = ReconciliationResult(
            enriched=enriched,
            already_linked=already_linked,
            unmatched=unmatched,
            skipped=skipped,
            demographics_merged=demographics,
        )
        logger.info(
            "Reconciliation complete: %d enriched, %d already linked, %d unmatched, %d skipped",
            enriched,
            already_linked,
            unmatched,
            skipped,
        )
        return result


def reconcile_orders(
    sales: Sequence[Sale],
    orders: Sequence[Order],
    config: EngineConfig | None = None,
    progress: Callable[[int, int], None] | None = None,
) -> ReconciliationResult:
    """Attach orders to sales in place and report the outcome.

    Examples
    --------
    >>> from datetime import datetime
    >>> sale = Sale("S1", datetime(2024, 5, 1, 13, 45), "Centro", "Ana Souza", 18)
    >>> order = Order("P1", datetime(2024, 5, 1, 14, 0), "Centro", "Ana Souza",
    ...               "M3", "Lavagem", "SUCESSO", 18)
    >>> reconcile_orders([sale], [order]).enriched
    1
    >>> sale.items[0].machine
    'M3'
    """
    return OrderReconciler(sales, config or DEFAULT_CONFIG).reconcile(orders, progress)
