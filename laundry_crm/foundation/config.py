"""Engine configuration shared by every reconciliation and CRM component."""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Mapping


@dataclass(frozen=True)
class EngineConfig:
    """Tunable constants for visit grouping, matching and churn scoring.

    Attributes
    ----------
    visit_window_minutes:
        Window, anchored at the first purchase of a visit, within which later
        purchases belong to the same visit.
    enrichment_window_minutes:
        Symmetric window around an order's timestamp used when looking for the
        sale it belongs to.
    merge_time_tolerance_minutes:
        Maximum time difference for two orders from different sources to be
        considered the same physical cycle.
    merge_value_tolerance:
        Maximum absolute value difference for the same check.
    reconcile_value_tolerance:
        How much an order's value may exceed the value of the sale it is
        attached to.
    reconcile_chunk_size:
        Number of orders processed between progress callbacks.
    default_cycle_price:
        Unit cycle price used when the data holds no plausible single-cycle
        transaction.
    min_cycle_price, max_cycle_price:
        Inclusive range of values considered plausible single-cycle prices.
    cycle_price_percentile:
        Percentile (0-1) of in-range values used as the global unit price.
    multi_basket_multiplier:
        A classified sale worth more than ``unit_price * multiplier`` is
        treated as several baskets of the same type.
    default_visit_interval_days:
        Assumed visit cadence for customers with a single visit.
    high_churn_floor_days, medium_churn_floor_days:
        Minimum recency before a customer can be flagged high / medium risk.
    new_customer_gap_days:
        A customer returning after a longer gap counts as new for a period.
    last_visits_limit:
        Number of most recent visits kept on a profile.
    top_slots_limit:
        Number of day+shift slots kept on a profile.
    diagnostics_limit:
        Maximum number of unclassified cycles surfaced in a summary.
    segment_with_approximate_baskets:
        Whether period segmentation may use the even wash/dry split for sales
        with no classification at all.
    parity_store_markers:
        Store name fragments whose machines are numbered even=wash, odd=dry.
    """

    visit_window_minutes: int = 180
    enrichment_window_minutes: int = 120
    merge_time_tolerance_minutes: int = 5
    merge_value_tolerance: Decimal = Decimal("0.05")
    reconcile_value_tolerance: Decimal = Decimal("0.05")
    reconcile_chunk_size: int = 1000
    default_cycle_price: Decimal = Decimal("18.00")
    min_cycle_price: Decimal = Decimal("8.00")
    max_cycle_price: Decimal = Decimal("25.00")
    cycle_price_percentile: float = 0.10
    multi_basket_multiplier: Decimal = Decimal("1.5")
    default_visit_interval_days: int = 20
    high_churn_floor_days: int = 30
    medium_churn_floor_days: int = 15
    new_customer_gap_days: int = 180
    last_visits_limit: int = 5
    top_slots_limit: int = 3
    diagnostics_limit: int = 20
    segment_with_approximate_baskets: bool = False
    parity_store_markers: tuple[str, ...] = ("LAVATERIA",)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        positive_ints = (
            "visit_window_minutes",
            "enrichment_window_minutes",
            "merge_time_tolerance_minutes",
            "reconcile_chunk_size",
            "default_visit_interval_days",
            "new_customer_gap_days",
        )
        for name in positive_ints:
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive: {value}")

        for name in ("last_visits_limit", "top_slots_limit", "diagnostics_limit"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} cannot be negative: {value}")

        if self.default_cycle_price <= 0:
            raise ValueError(
                f"default_cycle_price must be positive: {self.default_cycle_price}"
            )
        if not 0 < self.min_cycle_price <= self.max_cycle_price:
            raise ValueError(
                "Cycle price range must satisfy 0 < min <= max: "
                f"min={self.min_cycle_price}, max={self.max_cycle_price}"
            )
        if not 0 <= self.cycle_price_percentile < 1:
            raise ValueError(
                f"cycle_price_percentile must be in [0, 1): {self.cycle_price_percentile}"
            )
        if self.merge_value_tolerance < 0 or self.reconcile_value_tolerance < 0:
            raise ValueError("Value tolerances cannot be negative")
        if self.multi_basket_multiplier < 1:
            raise ValueError(
                f"multi_basket_multiplier must be >= 1: {self.multi_basket_multiplier}"
            )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "EngineConfig":
        """Build a config from a JSON-style mapping, ignoring unknown keys.

        Monetary fields are converted through ``str`` so that floats such as
        ``0.05`` become exact decimals.
        """
        known = {f.name: f for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in payload.items():
            if key not in known:
                continue
            default = getattr(DEFAULT_CONFIG, key)
            if isinstance(default, Decimal):
                value = Decimal(str(value))
            elif isinstance(default, tuple):
                value = tuple(str(item) for item in value)
            kwargs[key] = value
        return cls(**kwargs)


DEFAULT_CONFIG = EngineConfig()
