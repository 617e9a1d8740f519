"""Store occupancy, machine saturation and off-peak outreach.

Weekday indices follow :meth:`datetime.weekday` (Monday = 0) throughout, and
every matrix is shaped ``(7, 24)``: weekday by hour of day.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

import numpy as np

from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.cycles import CycleClassifier
from laundry_crm.foundation.records import Sale, is_excluded_customer

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7
HOURS_PER_DAY = 24
MINUTES_PER_HOUR = 60
MINUTES_PER_WEEK = DAYS_PER_WEEK * HOURS_PER_DAY * MINUTES_PER_HOUR

WASH_DURATION_MINUTES = 33.5
DRY_DURATION_MINUTES = 49.0

PEAK_SATURATION = 0.7
LATENT_DEMAND_SATURATION = 0.75
FLEXIBLE_PEAK_SATURATION = 0.6
PEAK_HOURS_LIMIT = 5
FLEXIBLE_CUSTOMERS_LIMIT = 15
BUSY_PEAK_COUNT = 5

# One extra cycle per saturated hour, four weeks a month.
LATENT_CYCLES_PER_HOUR_PER_MONTH = 4
FALLBACK_CYCLE_TICKET = Decimal("35.00")
MACHINE_SET_COST = Decimal("35000")

DAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

MONEY_PRECISION = Decimal("0.01")
MIN_PHONE_LENGTH = 6


def _money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def occupancy_heatmap(sales: Iterable[Sale]) -> np.ndarray:
    """Count transactions per weekday and hour.

    >>> from datetime import datetime
    >>> matrix = occupancy_heatmap([Sale("1", datetime(2024, 1, 1, 9, 15), "", "A", 10)])
    >>> matrix.shape, int(matrix[0, 9])
    ((7, 24), 1)
    """
    matrix = np.zeros((DAYS_PER_WEEK, HOURS_PER_DAY), dtype=np.int64)
    for sale in sales:
        if sale.is_valid():
            matrix[sale.timestamp.weekday(), sale.timestamp.hour] += 1
    return matrix


def visits_heatmap(sales: Iterable[Sale]) -> np.ndarray:
    """Count customer sessions (one per customer, date and hour) per weekday and hour."""
    matrix = np.zeros((DAYS_PER_WEEK, HOURS_PER_DAY), dtype=np.int64)
    seen: set[tuple] = set()
    for sale in sales:
        if not sale.is_valid():
            continue
        moment = sale.timestamp
        key = (moment.date(), moment.hour, sale.customer_key)
        if key in seen:
            continue
        seen.add(key)
        matrix[moment.weekday(), moment.hour] += 1
    return matrix


def _minute_of_week(moment: datetime) -> int:
    return (
        moment.weekday() * HOURS_PER_DAY * MINUTES_PER_HOUR
        + moment.hour * MINUTES_PER_HOUR
        + moment.minute
    )


@dataclass(frozen=True)
class PeakHour:
    day: int
    hour: int
    saturation: float

    @property
    def label(self) -> str:
        return f"{DAY_LABELS[self.day]} {self.hour}h"

    def as_dict(self) -> dict[str, object]:
        return {
            "day": self.day,
            "day_label": DAY_LABELS[self.day],
            "hour": self.hour,
            "saturation": round(self.saturation, 4),
        }


@dataclass(frozen=True)
class ExpansionEstimate:
    """Return on adding one wash and one dry machine.

    Attributes
    ----------
    captured_cycles_per_month:
        Cycles assumed lost today in hours above the latent-demand threshold.
    avg_ticket:
        Mean value of an attached cycle item.
    monthly_revenue_increase:
        ``captured_cycles_per_month * avg_ticket``.
    estimated_payback_months:
        Machine set cost divided by the monthly increase (0 when nothing is
        captured).
    capacity_increase_pct:
        Relative capacity added by the new pair.
    """

    captured_cycles_per_month: int
    avg_ticket: Decimal
    monthly_revenue_increase: Decimal
    estimated_payback_months: Decimal
    capacity_increase_pct: Decimal

    def as_dict(self) -> dict[str, object]:
        return {
            "captured_cycles_per_month": self.captured_cycles_per_month,
            "avg_ticket": float(self.avg_ticket),
            "monthly_revenue_increase": float(self.monthly_revenue_increase),
            "estimated_payback_months": float(self.estimated_payback_months),
            "capacity_increase_pct": float(self.capacity_increase_pct),
        }


@dataclass(frozen=True)
class AvailabilityMetrics:
    """Machine saturation by weekday and hour.

    ``saturation[d, h]`` is the busiest minute of that hour, averaged over
    the observed days of that weekday, as a fraction of installed machines,
    taking whichever of wash or dry is the bottleneck. ``load[d, h]`` is the
    rounded average number of machines busy at that minute.
    """

    wash_machines: int
    dry_machines: int
    saturation: np.ndarray
    load: np.ndarray
    peak_hours: list[PeakHour] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    expansion: ExpansionEstimate | None = None

    def saturation_at(self, day: int, hour: int) -> float:
        return float(self.saturation[day, hour])

    def as_dict(self) -> dict[str, object]:
        return {
            "wash_machines": self.wash_machines,
            "dry_machines": self.dry_machines,
            "saturation": np.round(self.saturation, 4).tolist(),
            "load": self.load.tolist(),
            "peak_hours": [peak.as_dict() for peak in self.peak_hours],
            "recommendations": list(self.recommendations),
            "expansion": self.expansion.as_dict() if self.expansion else None,
        }


def calculate_machine_availability(
    sales: Sequence[Sale],
    config: EngineConfig | None = None,
    classifier: CycleClassifier | None = None,
) -> AvailabilityMetrics:
    """Estimate how saturated the machines are over the week.

    Each attached cycle item occupies its machine for the nominal wash or dry
    duration from the sale's timestamp. Occupancy is accumulated per minute
    of the week (wrapping from Sunday night into Monday), then reduced to the
    busiest minute of each hour.
    """
    config = config or DEFAULT_CONFIG
    classifier = classifier or CycleClassifier.from_config(config)
    valid = [sale for sale in sales if sale.is_valid()]

    wash_timeline = np.zeros(MINUTES_PER_WEEK, dtype=np.int64)
    dry_timeline = np.zeros(MINUTES_PER_WEEK, dtype=np.int64)
    wash_machines: set[str] = set()
    dry_machines: set[str] = set()
    wash_span = np.arange(math.ceil(WASH_DURATION_MINUTES))
    dry_span = np.arange(math.ceil(DRY_DURATION_MINUTES))

    item_revenue = Decimal("0")
    item_count = 0
    for sale in valid:
        start = _minute_of_week(sale.timestamp)
        for item in sale.items:
            item_count += 1
            if item.value is not None and item.value.is_finite():
                item_revenue += item.value
            if not item.machine:
                continue
            cycle = classifier.classify(item.service, item.machine, sale.store)
            if cycle.is_dry:
                dry_machines.add(item.machine)
                np.add.at(dry_timeline, (start + dry_span) % MINUTES_PER_WEEK, 1)
            else:
                wash_machines.add(item.machine)
                np.add.at(wash_timeline, (start + wash_span) % MINUTES_PER_WEEK, 1)

    days_observed = np.zeros(DAYS_PER_WEEK, dtype=np.int64)
    for day in {sale.timestamp.date() for sale in valid}:
        days_observed[day.weekday()] += 1
    divisor = np.maximum(days_observed, 1)[:, np.newaxis]

    shape = (DAYS_PER_WEEK, HOURS_PER_DAY, MINUTES_PER_HOUR)
    avg_wash = wash_timeline.reshape(shape).max(axis=2) / divisor
    avg_dry = dry_timeline.reshape(shape).max(axis=2) / divisor

    total_wash = max(len(wash_machines), 1)
    total_dry = max(len(dry_machines), 1)
    saturation = np.maximum(avg_wash / total_wash, avg_dry / total_dry)
    load = np.rint(avg_wash + avg_dry).astype(np.int64)

    peaks = sorted(
        (
            PeakHour(day=int(day), hour=int(hour), saturation=float(saturation[day, hour]))
            for day, hour in zip(*np.nonzero(saturation > PEAK_SATURATION))
        ),
        key=lambda peak: -peak.saturation,
    )

    recommendations: list[str] = []
    if len(peaks) > BUSY_PEAK_COUNT:
        recommendations.append(
            f"High demand detected in {len(peaks)} hourly slots. "
            "Consider off-peak promotions."
        )
    if any(peak.saturation >= 1.0 for peak in peaks):
        recommendations.append(
            "Machines reach full occupancy at times. Customers may be waiting "
            "or leaving."
        )

    latent_hours = int(np.count_nonzero(saturation > LATENT_DEMAND_SATURATION))
    captured = latent_hours * LATENT_CYCLES_PER_HOUR_PER_MONTH
    avg_ticket = item_revenue / item_count if item_count else FALLBACK_CYCLE_TICKET
    monthly_increase = captured * avg_ticket
    payback = MACHINE_SET_COST / monthly_increase if monthly_increase > 0 else Decimal("0")
    installed = total_wash + total_dry
    capacity = (Decimal(installed + 2) / Decimal(installed) - 1) * 100

    expansion = ExpansionEstimate(
        captured_cycles_per_month=captured,
        avg_ticket=_money(avg_ticket),
        monthly_revenue_increase=_money(monthly_increase),
        estimated_payback_months=_money(payback),
        capacity_increase_pct=_money(capacity),
    )
    logger.info(
        "Machine availability: %d wash / %d dry machines, %d peak hours",
        total_wash,
        total_dry,
        len(peaks),
    )
    return AvailabilityMetrics(
        wash_machines=total_wash,
        dry_machines=total_dry,
        saturation=saturation,
        load=load,
        peak_hours=peaks[:PEAK_HOURS_LIMIT],
        recommendations=recommendations,
        expansion=expansion,
    )


@dataclass(frozen=True)
class FlexibleCustomer:
    """A customer seen both at peak and off-peak hours."""

    name: str
    phone: str
    total_visits: int
    peak_visits: int
    off_peak_visits: int
    preferred_peak_day: int
    preferred_peak_hour: int
    preferred_off_peak_day: int
    preferred_off_peak_hour: int

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "phone": self.phone,
            "total_visits": self.total_visits,
            "peak_visits": self.peak_visits,
            "off_peak_visits": self.off_peak_visits,
            "preferred_peak_day": DAY_LABELS[self.preferred_peak_day],
            "preferred_peak_hour": self.preferred_peak_hour,
            "preferred_off_peak_day": DAY_LABELS[self.preferred_off_peak_day],
            "preferred_off_peak_hour": self.preferred_off_peak_hour,
        }


def _mode(values: Iterable[int]) -> int:
    ranked = Counter(values).most_common(1)
    return ranked[0][0] if ranked else 0


def find_flexible_customers(
    sales: Iterable[Sale],
    saturation: np.ndarray | AvailabilityMetrics,
    limit: int = FLEXIBLE_CUSTOMERS_LIMIT,
) -> list[FlexibleCustomer]:
    """Customers who could be nudged from peak hours to quieter ones.

    A transaction is at peak when the saturation of its weekday and hour is
    above 0.6. Only customers with both peak and off-peak transactions are
    returned, most peak transactions first.
    """
    if isinstance(saturation, AvailabilityMetrics):
        saturation = saturation.saturation

    visits: dict[str, list[tuple[int, int, bool]]] = {}
    phones: dict[str, str] = {}
    for sale in sorted(
        (s for s in sales if s.is_valid()), key=lambda s: s.timestamp
    ):
        if is_excluded_customer(sale.customer):
            continue
        key = sale.customer_key
        day, hour = sale.timestamp.weekday(), sale.timestamp.hour
        is_peak = bool(saturation[day, hour] > FLEXIBLE_PEAK_SATURATION)
        visits.setdefault(key, []).append((day, hour, is_peak))
        if sale.phone and len(sale.phone) >= MIN_PHONE_LENGTH:
            phones[key] = sale.phone

    flexible: list[FlexibleCustomer] = []
    for name, entries in visits.items():
        peak = [(day, hour) for day, hour, is_peak in entries if is_peak]
        off_peak = [(day, hour) for day, hour, is_peak in entries if not is_peak]
        if not peak or not off_peak:
            continue
        flexible.append(
            FlexibleCustomer(
                name=name,
                phone=phones.get(name, ""),
                total_visits=len(entries),
                peak_visits=len(peak),
                off_peak_visits=len(off_peak),
                preferred_peak_day=_mode(day for day, _ in peak),
                preferred_peak_hour=_mode(hour for _, hour in peak),
                preferred_off_peak_day=_mode(day for day, _ in off_peak),
                preferred_off_peak_hour=_mode(hour for _, hour in off_peak),
            )
        )

    flexible.sort(key=lambda customer: -customer.peak_visits)
    return flexible[:limit]
