from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Sequence

from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.matching import BucketedTimeIndex
from laundry_crm.foundation.records import Order, Sale
from laundry_crm.foundation.visits import segment_visits
from laundry_crm.reconciliation.merge import machine_key


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    message: str = ""


def check_valid_records(sales: Sequence[Sale]) -> ValidationResult:
    for idx, sale in enumerate(sales):
        if not sale.is_valid():
            return ValidationResult(False, f"missing timestamp or value at index {idx}")
        if sale.value < 0:
            return ValidationResult(False, f"value must be >= 0 at index {idx}")
    return ValidationResult(True, "all sales have a timestamp and a non-negative value")


def check_visit_partition(
    sales: Sequence[Sale], *, window_minutes: int = DEFAULT_CONFIG.visit_window_minutes
) -> ValidationResult:
    """Validate that visits partition every customer's transactions.

    Each transaction must belong to exactly one visit, visits must not
    overlap, and no member may fall outside its visit's window.

    Parameters
    ----------
    sales:
        Sales of any number of customers.
    window_minutes:
        Visit window to check with.

    Returns
    -------
    ValidationResult
        Validation result naming the first offending customer.
    """
    by_customer: dict[str, list[Sale]] = {}
    for sale in sales:
        if sale.is_valid():
            by_customer.setdefault(sale.customer_key, []).append(sale)

    for name, customer_sales in by_customer.items():
        visits = segment_visits(customer_sales, window_minutes)
        members = [id(txn) for visit in visits for txn in visit.transactions]
        if len(members) != len(customer_sales) or len(set(members)) != len(members):
            return ValidationResult(False, f"visits do not partition sales of {name}")
        for previous, current in zip(visits, visits[1:]):
            if current.start < previous.end:
                return ValidationResult(False, f"overlapping visits for {name}")
        for visit in visits:
            if visit.end - visit.start > timedelta(minutes=window_minutes + 1):
                return ValidationResult(False, f"visit exceeds window for {name}")
    return ValidationResult(True, f"visits partition sales of {len(by_customer)} customers")


def check_no_duplicate_orders(
    orders: Sequence[Order], config: EngineConfig = DEFAULT_CONFIG
) -> ValidationResult:
    """Validate that no two orders look like the same physical cycle.

    Uses the merge tolerances: same day and machine (leading zeros ignored),
    value within ``merge_value_tolerance`` and time within
    ``merge_time_tolerance_minutes``.
    """
    if not orders:
        return ValidationResult(True, "no orders to check")

    tolerance = timedelta(minutes=config.merge_time_tolerance_minutes)
    index: BucketedTimeIndex = BucketedTimeIndex(
        key_fn=lambda o: (o.timestamp.date(), machine_key(o.machine)),
        time_fn=lambda o: o.timestamp,
    )
    duplicates = 0
    for order in orders:
        if not order.is_valid():
            continue
        key = (order.timestamp.date(), machine_key(order.machine))
        match = index.nearest(
            key,
            order.timestamp,
            tolerance,
            accept=lambda other: abs(other.value - order.value)
            <= config.merge_value_tolerance,
        )
        if match is not None:
            duplicates += 1
        index.add(order)

    if duplicates > 0:
        return ValidationResult(
            False,
            f"found {duplicates} likely duplicate orders out of {len(orders)} total",
        )
    return ValidationResult(True, f"all {len(orders)} orders are distinct cycles")
