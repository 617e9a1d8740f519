"""Customer profiles and the CRM summary.

Builds one profile per customer from the full sales history: visits, spend,
wash/dry cycles, recency, churn risk relative to the customer's own cadence,
preferred day and shift, and registry enrichment. A global summary aggregates
the profiles into activity tiers and wash-to-dry conversion.

Recency is measured against the latest transaction in the loaded data rather
than the wall clock, so the same input always produces the same report.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Sequence

from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.cycles import BasketEstimator, CycleClassifier
from laundry_crm.foundation.records import (
    CustomerRecord,
    Sale,
    is_excluded_customer,
    normalize_name,
)
from laundry_crm.foundation.visits import VisitSegmenter, shift_of

logger = logging.getLogger(__name__)

MONEY_PRECISION = Decimal("0.01")
PERCENTAGE_PRECISION = Decimal("0.01")

#: Sentinel for preferences of customers with nothing to rank.
NOT_AVAILABLE = "N/A"

DAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

# Registry names this short are too ambiguous to match on.
MIN_REGISTRY_NAME_LENGTH = 3

MIN_PHONE_LENGTH = 6


def _money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def _pct(part: int | Decimal, whole: int | Decimal) -> Decimal:
    if not whole:
        return Decimal("0.00")
    return (Decimal(part) / Decimal(whole) * 100).quantize(
        PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
    )


class ChurnRisk(str, Enum):
    """How overdue a customer is relative to their own visiting cadence."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def classify_churn_risk(
    recency_days: int, interval_days: float, config: EngineConfig = DEFAULT_CONFIG
) -> ChurnRisk:
    """Assign exactly one churn tier.

    Comparisons are strict: a customer exactly at a threshold stays in the
    lower tier.

    Examples
    --------
    >>> classify_churn_risk(40, 20).value
    'medium'
    >>> classify_churn_risk(41, 20).value
    'high'
    >>> classify_churn_risk(15, 5).value
    'low'
    """
    if recency_days > max(interval_days * 2, config.high_churn_floor_days):
        return ChurnRisk.HIGH
    if recency_days > max(interval_days * 1.5, config.medium_churn_floor_days):
        return ChurnRisk.MEDIUM
    return ChurnRisk.LOW


@dataclass(frozen=True)
class LastVisit:
    """Breakdown of one recent visit."""

    date: datetime
    shift: str
    total: Decimal
    wash_count: int
    dry_count: int

    def as_dict(self) -> dict[str, object]:
        return {
            "date": self.date.isoformat(),
            "shift": self.shift,
            "total": float(self.total),
            "wash_count": self.wash_count,
            "dry_count": self.dry_count,
        }


@dataclass(frozen=True)
class TimeSlot:
    """A weekday and shift combination with its transaction count."""

    day: str
    shift: str
    count: int

    def as_dict(self) -> dict[str, object]:
        return {"day": self.day, "shift": self.shift, "count": self.count}


@dataclass(frozen=True)
class CustomerProfile:
    """Everything the CRM knows about one customer.

    Attributes
    ----------
    name:
        Normalized identity key (upper-cased display name, or the registry
        name when the sales carried a registry id).
    total_spent:
        Sum of all transaction values.
    total_visits:
        Number of visits as grouped by the visit window.
    average_ticket:
        ``total_spent / total_visits``.
    total_washes, total_dries, total_cycles:
        Cycles counted per transaction.
    total_baskets:
        Same as ``total_cycles`` (one cycle is one basket).
    avg_baskets_per_visit:
        ``total_baskets / total_visits``.
    first_visit_date:
        Earliest transaction, or the registry registration date when that is
        earlier.
    last_visit_date:
        Latest transaction.
    recency_days:
        Whole days between the dataset's latest transaction and
        ``last_visit_date``.
    average_interval_days:
        Mean days between visits, or the configured default for
        single-visit customers.
    churn_risk:
        Exactly one of low / medium / high.
    next_predicted_visit:
        ``last_visit_date`` plus the rounded-up average interval.
    spent_30d, spent_90d, spent_180d:
        Spend strictly after ``today - N days``.
    baskets_180d:
        Cycles strictly after ``today - 180 days``.
    top_day, top_shift, preferred_store:
        Most frequent values over all transactions (first seen wins ties).
    top_slots:
        Most frequent day and shift combinations.
    last_visits:
        Most recent visits first.
    """

    name: str
    total_spent: Decimal
    total_visits: int
    average_ticket: Decimal
    total_washes: int
    total_dries: int
    total_cycles: int
    total_baskets: int
    avg_baskets_per_visit: Decimal
    first_visit_date: datetime
    last_visit_date: datetime
    recency_days: int
    average_interval_days: float
    churn_risk: ChurnRisk
    next_predicted_visit: datetime
    spent_30d: Decimal
    spent_90d: Decimal
    spent_180d: Decimal
    baskets_180d: int
    top_day: str
    top_shift: str
    preferred_store: str
    top_slots: tuple[TimeSlot, ...] = ()
    last_visits: tuple[LastVisit, ...] = ()
    phone: str = ""
    email: str | None = None
    cpf: str | None = None
    gender: str = "U"
    registration_date: datetime | None = None
    birth_date: date | None = None
    age: int | None = None

    def __post_init__(self) -> None:
        if self.total_visits < 0:
            raise ValueError(f"Total visits cannot be negative: {self.total_visits}")
        if self.total_washes + self.total_dries > self.total_cycles:
            raise ValueError(
                f"Wash ({self.total_washes}) + dry ({self.total_dries}) exceeds "
                f"total cycles ({self.total_cycles})"
            )

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "total_spent": float(self.total_spent),
            "total_visits": self.total_visits,
            "average_ticket": float(self.average_ticket),
            "total_washes": self.total_washes,
            "total_dries": self.total_dries,
            "total_cycles": self.total_cycles,
            "total_baskets": self.total_baskets,
            "avg_baskets_per_visit": float(self.avg_baskets_per_visit),
            "first_visit_date": self.first_visit_date.isoformat(),
            "last_visit_date": self.last_visit_date.isoformat(),
            "recency_days": self.recency_days,
            "average_interval_days": round(self.average_interval_days, 4),
            "churn_risk": self.churn_risk.value,
            "next_predicted_visit": self.next_predicted_visit.isoformat(),
            "spent_30d": float(self.spent_30d),
            "spent_90d": float(self.spent_90d),
            "spent_180d": float(self.spent_180d),
            "baskets_180d": self.baskets_180d,
            "top_day": self.top_day,
            "top_shift": self.top_shift,
            "preferred_store": self.preferred_store,
            "top_slots": [slot.as_dict() for slot in self.top_slots],
            "last_visits": [visit.as_dict() for visit in self.last_visits],
            "phone": self.phone,
            "email": self.email,
            "cpf": self.cpf,
            "gender": self.gender,
            "registration_date": self.registration_date.isoformat()
            if self.registration_date
            else None,
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
            "age": self.age,
        }


@dataclass(frozen=True)
class WashDryStats:
    """Global wash/dry totals and the dry-to-wash conversion."""

    wash_count: int
    dry_count: int
    ratio: Decimal
    conversion_rate: Decimal

    @property
    def total_baskets(self) -> int:
        return self.wash_count + self.dry_count

    def as_dict(self) -> dict[str, object]:
        return {
            "wash_count": self.wash_count,
            "dry_count": self.dry_count,
            "ratio": float(self.ratio),
            "conversion_rate": float(self.conversion_rate),
            "total_baskets": self.total_baskets,
        }


@dataclass(frozen=True)
class CustomerStats:
    """Activity tiers over the customer base.

    ``retention_rate`` is the percentage of customers with more than one
    visit; ``churn_rate`` is the percentage inactive for over 90 days.
    """

    active_30d: int
    inactive_30_60d: int
    inactive_60_90d: int
    inactive_90d: int
    new_customers: int
    recurring: int
    churn_risk_counts: dict[str, int]
    avg_visits_per_month: Decimal
    avg_ltv: Decimal
    retention_rate: Decimal
    churn_rate: Decimal

    def as_dict(self) -> dict[str, object]:
        return {
            "active_30d": self.active_30d,
            "inactive_30_60d": self.inactive_30_60d,
            "inactive_60_90d": self.inactive_60_90d,
            "inactive_90d": self.inactive_90d,
            "new_customers": self.new_customers,
            "recurring": self.recurring,
            "churn_risk_counts": dict(self.churn_risk_counts),
            "avg_visits_per_month": float(self.avg_visits_per_month),
            "avg_ltv": float(self.avg_ltv),
            "retention_rate": float(self.retention_rate),
            "churn_rate": float(self.churn_rate),
        }


@dataclass(frozen=True)
class CycleDiagnostic:
    """A cycle (or item-less sale) no classification rule recognised."""

    customer: str
    sale_id: str
    timestamp: datetime
    store: str
    machine: str
    service: str
    value: Decimal | None

    def as_dict(self) -> dict[str, object]:
        return {
            "customer": self.customer,
            "sale_id": self.sale_id,
            "timestamp": self.timestamp.isoformat(),
            "store": self.store,
            "machine": self.machine,
            "service": self.service,
            "value": float(self.value) if self.value is not None else None,
        }


@dataclass(frozen=True)
class CrmSummary:
    """Profiles plus global aggregates."""

    profiles: list[CustomerProfile]
    total_customers: int
    total_revenue: Decimal
    total_visits: int
    global_average_ticket: Decimal
    global_avg_baskets_per_visit: Decimal
    wash_dry: WashDryStats
    customer_stats: CustomerStats
    diagnostics: list[CycleDiagnostic] = field(default_factory=list)
    unclassified_count: int = 0
    reference_date: datetime | None = None

    @property
    def total_cycles(self) -> int:
        return self.wash_dry.total_baskets

    @property
    def active_customers(self) -> int:
        return self.customer_stats.active_30d

    @property
    def churn_rate(self) -> Decimal:
        return self.customer_stats.churn_rate

    def as_dict(self) -> dict[str, object]:
        return {
            "reference_date": self.reference_date.isoformat()
            if self.reference_date
            else None,
            "total_customers": self.total_customers,
            "total_revenue": float(self.total_revenue),
            "total_visits": self.total_visits,
            "total_cycles": self.total_cycles,
            "global_average_ticket": float(self.global_average_ticket),
            "global_avg_baskets_per_visit": float(self.global_avg_baskets_per_visit),
            "active_customers": self.active_customers,
            "wash_dry": self.wash_dry.as_dict(),
            "customer_stats": self.customer_stats.as_dict(),
            "unclassified_count": self.unclassified_count,
            "diagnostics": [item.as_dict() for item in self.diagnostics],
            "profiles": [profile.as_dict() for profile in self.profiles],
        }


class CustomerIdentityResolver:
    """Resolve sales to customer keys, letting registry ids merge aliases.

    The default key is the normalized display name. When a sale carries a
    ``customer_id`` known to the registry, the registry's normalized name is
    used instead, so two spellings of the same registered customer collapse
    into one profile.
    """

    def __init__(self, registry: Iterable[CustomerRecord] | None = None) -> None:
        self.by_id: dict[str, CustomerRecord] = {}
        self.by_name: dict[str, CustomerRecord] = {}
        for record in registry or ():
            if record.customer_id:
                self.by_id[str(record.customer_id)] = record
            name = normalize_name(record.name)
            if len(name) >= MIN_REGISTRY_NAME_LENGTH:
                self.by_name[name] = record

    def key_for(self, sale: Sale) -> str | None:
        """Return the profile key for a sale, or None when it is excluded."""
        if is_excluded_customer(sale.customer):
            return None
        if sale.customer_id is not None:
            record = self.by_id.get(str(sale.customer_id))
            if record is not None and len(normalize_name(record.name)) >= MIN_REGISTRY_NAME_LENGTH:
                return normalize_name(record.name)
        return sale.customer_key

    def lookup(self, key: str, sales: Sequence[Sale]) -> CustomerRecord | None:
        """Registry record for a customer, by id first and name second."""
        for sale in sales:
            if sale.customer_id is not None:
                record = self.by_id.get(str(sale.customer_id))
                if record is not None:
                    return record
        return self.by_name.get(key)


def _most_common(counter: Counter, default: str = NOT_AVAILABLE) -> str:
    # Counter.most_common is stable, so the first key seen wins ties.
    ranked = counter.most_common(1)
    return ranked[0][0] if ranked else default


class CrmProfileBuilder:
    """Build customer profiles and the CRM summary.

    Parameters
    ----------
    config:
        Engine configuration; defaults to :data:`DEFAULT_CONFIG`.
    classifier:
        Cycle classifier; defaults to one built from ``config``.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        classifier: CycleClassifier | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.classifier = classifier or CycleClassifier.from_config(self.config)

    def group_sales(
        self, sales: Iterable[Sale], resolver: CustomerIdentityResolver
    ) -> dict[str, list[Sale]]:
        """Group valid, non-excluded sales by customer key in first-seen order."""
        groups: dict[str, list[Sale]] = {}
        for sale in sales:
            if not sale.is_valid():
                continue
            key = resolver.key_for(sale)
            if key is None:
                continue
            groups.setdefault(key, []).append(sale)
        return groups

    def build(
        self,
        sales: Sequence[Sale],
        registry: Iterable[CustomerRecord] | None = None,
    ) -> CrmSummary:
        valid = [sale for sale in sales if sale.is_valid()]
        invalid = len(sales) - len(valid)
        if invalid:
            logger.warning("Ignoring %d sales without timestamp or value", invalid)

        resolver = CustomerIdentityResolver(registry)
        estimator = BasketEstimator.from_sales(valid, self.classifier, self.config)
        today = max((sale.timestamp for sale in valid), default=None)

        profiles: list[CustomerProfile] = []
        diagnostics: list[CycleDiagnostic] = []
        unclassified = 0
        if today is not None:
            for key, customer_sales in self.group_sales(valid, resolver).items():
                profiles.append(
                    self.build_profile(
                        key,
                        customer_sales,
                        today,
                        estimator,
                        resolver.lookup(key, customer_sales),
                    )
                )
                for diagnostic in self._diagnose(key, customer_sales):
                    unclassified += 1
                    if len(diagnostics) < self.config.diagnostics_limit:
                        diagnostics.append(diagnostic)

        profiles.sort(key=lambda profile: (-profile.total_spent, profile.name))
        summary = self._summarize(profiles, today, diagnostics, unclassified)
        logger.info(
            "Built %d customer profiles (%d unclassified cycles)",
            len(profiles),
            unclassified,
        )
        return summary

    def build_profile(
        self,
        key: str,
        sales: Sequence[Sale],
        today: datetime,
        estimator: BasketEstimator,
        record: CustomerRecord | None = None,
    ) -> CustomerProfile:
        """Build one profile from a customer's valid sales."""
        ordered = sorted(sales, key=lambda sale: sale.timestamp)
        counts = {id(sale): estimator.count_sale(sale) for sale in ordered}
        visits = VisitSegmenter(
            self.config.visit_window_minutes,
            counter=lambda sale: counts[id(sale)],
        ).segment(ordered)

        total_visits = len(visits)
        total_spent = sum((sale.value for sale in ordered), Decimal("0"))
        washes = sum(count.wash for count in counts.values())
        dries = sum(count.dry for count in counts.values())
        cycles = washes + dries

        first = ordered[0].timestamp
        last = ordered[-1].timestamp
        recency = (today - last).days
        days_since_first = (today - first).days
        if total_visits > 1:
            interval = days_since_first / (total_visits - 1)
        else:
            interval = float(self.config.default_visit_interval_days)

        cutoffs = {days: today - timedelta(days=days) for days in (30, 90, 180)}
        spent = {days: Decimal("0") for days in cutoffs}
        baskets_180d = 0
        for sale in ordered:
            for days, cutoff in cutoffs.items():
                if sale.timestamp > cutoff:
                    spent[days] += sale.value
            if sale.timestamp > cutoffs[180]:
                baskets_180d += counts[id(sale)].total

        day_counts: Counter = Counter()
        shift_counts: Counter = Counter()
        slot_counts: Counter = Counter()
        store_counts: Counter = Counter()
        for sale in ordered:
            day = DAY_NAMES[sale.timestamp.weekday()]
            shift = shift_of(sale.timestamp)
            day_counts[day] += 1
            shift_counts[shift] += 1
            slot_counts[(day, shift)] += 1
            if sale.store:
                store_counts[sale.store] += 1

        top_slots = tuple(
            TimeSlot(day=day, shift=shift, count=count)
            for (day, shift), count in slot_counts.most_common(self.config.top_slots_limit)
        )
        recent = visits[::-1][: self.config.last_visits_limit]
        last_visits = tuple(
            LastVisit(
                date=visit.start,
                shift=visit.shift,
                total=_money(visit.total_value),
                wash_count=visit.wash_count,
                dry_count=visit.dry_count,
            )
            for visit in recent
        )

        registration = record.registration_date if record else None
        first_visit = first
        if registration is not None and registration < first:
            first_visit = registration

        phone = record.phone if record and record.phone else ""
        if not phone:
            phone = next(
                (
                    sale.phone
                    for sale in reversed(ordered)
                    if sale.phone and len(sale.phone) >= MIN_PHONE_LENGTH
                ),
                "",
            )

        birth_date = next((s.birth_date for s in ordered if s.birth_date), None)
        age = next((s.age for s in ordered if s.age), None)

        return CustomerProfile(
            name=key,
            total_spent=_money(total_spent),
            total_visits=total_visits,
            average_ticket=_money(total_spent / total_visits),
            total_washes=washes,
            total_dries=dries,
            total_cycles=cycles,
            total_baskets=cycles,
            avg_baskets_per_visit=_money(Decimal(cycles) / total_visits),
            first_visit_date=first_visit,
            last_visit_date=last,
            recency_days=recency,
            average_interval_days=interval,
            churn_risk=classify_churn_risk(recency, interval, self.config),
            next_predicted_visit=last + timedelta(days=math.ceil(interval)),
            spent_30d=_money(spent[30]),
            spent_90d=_money(spent[90]),
            spent_180d=_money(spent[180]),
            baskets_180d=baskets_180d,
            top_day=_most_common(day_counts),
            top_shift=_most_common(shift_counts),
            preferred_store=_most_common(store_counts),
            top_slots=top_slots,
            last_visits=last_visits,
            phone=phone,
            email=record.email if record else None,
            cpf=record.cpf if record else None,
            gender=record.gender if record else "U",
            registration_date=registration,
            birth_date=birth_date,
            age=age,
        )

    def _diagnose(self, key: str, sales: Sequence[Sale]) -> Iterable[CycleDiagnostic]:
        for sale in sales:
            if sale.items:
                for item in sale.items:
                    cycle = self.classifier.classify(item.service, item.machine, sale.store)
                    if not cycle.classified:
                        yield CycleDiagnostic(
                            customer=key,
                            sale_id=sale.sale_id,
                            timestamp=sale.timestamp,
                            store=sale.store,
                            machine=item.machine,
                            service=item.service,
                            value=item.value,
                        )
            elif not self.classifier.classify(sale.product, "", sale.store).classified:
                yield CycleDiagnostic(
                    customer=key,
                    sale_id=sale.sale_id,
                    timestamp=sale.timestamp,
                    store=sale.store,
                    machine="",
                    service=sale.product,
                    value=sale.value,
                )

    def _summarize(
        self,
        profiles: list[CustomerProfile],
        today: datetime | None,
        diagnostics: list[CycleDiagnostic],
        unclassified: int,
    ) -> CrmSummary:
        total_customers = len(profiles)
        total_revenue = sum((p.total_spent for p in profiles), Decimal("0"))
        total_visits = sum(p.total_visits for p in profiles)
        washes = sum(p.total_washes for p in profiles)
        dries = sum(p.total_dries for p in profiles)

        active = inactive_30 = inactive_60 = inactive_90 = 0
        new_customers = recurring = 0
        risk_counts = {risk.value: 0 for risk in ChurnRisk}
        frequency_sum = Decimal("0")
        if today is not None:
            d30, d60, d90 = (today - timedelta(days=n) for n in (30, 60, 90))
            for profile in profiles:
                last = profile.last_visit_date
                if last > d30:
                    active += 1
                elif last > d60:
                    inactive_30 += 1
                elif last > d90:
                    inactive_60 += 1
                else:
                    inactive_90 += 1
                if profile.first_visit_date > d30:
                    new_customers += 1
                if profile.total_visits > 1:
                    recurring += 1
                risk_counts[profile.churn_risk.value] += 1
                months = max(Decimal((today - profile.first_visit_date).days) / 30, Decimal("1"))
                frequency_sum += Decimal(profile.total_visits) / months

        def ratio(part: Decimal | int, whole: Decimal | int) -> Decimal:
            if not whole:
                return Decimal("0.00")
            return (Decimal(part) / Decimal(whole)).quantize(
                MONEY_PRECISION, rounding=ROUND_HALF_UP
            )

        stats = CustomerStats(
            active_30d=active,
            inactive_30_60d=inactive_30,
            inactive_60_90d=inactive_60,
            inactive_90d=inactive_90,
            new_customers=new_customers,
            recurring=recurring,
            churn_risk_counts=risk_counts,
            avg_visits_per_month=ratio(frequency_sum, total_customers),
            avg_ltv=ratio(total_revenue, total_customers),
            retention_rate=_pct(recurring, total_customers),
            churn_rate=_pct(inactive_90, total_customers),
        )
        wash_dry = WashDryStats(
            wash_count=washes,
            dry_count=dries,
            ratio=ratio(dries, washes),
            conversion_rate=_pct(dries, washes),
        )
        return CrmSummary(
            profiles=profiles,
            total_customers=total_customers,
            total_revenue=_money(total_revenue),
            total_visits=total_visits,
            global_average_ticket=ratio(total_revenue, total_visits),
            global_avg_baskets_per_visit=ratio(washes + dries, total_visits),
            wash_dry=wash_dry,
            customer_stats=stats,
            diagnostics=diagnostics,
            unclassified_count=unclassified,
            reference_date=today,
        )


def calculate_crm_metrics(
    sales: Sequence[Sale],
    registry: Iterable[CustomerRecord] | None = None,
    config: EngineConfig | None = None,
) -> CrmSummary:
    """Build every customer profile and the global CRM summary.

    Parameters
    ----------
    sales:
        Full sales history. Invalid sales are ignored.
    registry:
        Optional customer registry used for enrichment and alias merging.
    config:
        Engine configuration.

    Returns
    -------
    CrmSummary
        Profiles sorted by total spent (descending) then name.

    Examples
    --------
    >>> from datetime import datetime
    >>> sales = [
    ...     Sale("1", datetime(2024, 1, 1, 10, 0), "Centro", "Ana", 20, product="Lavagem"),
    ...     Sale("2", datetime(2024, 1, 1, 10, 30), "Centro", "Ana", 15, product="Secagem"),
    ...     Sale("3", datetime(2024, 1, 10, 9, 0), "Centro", "Ana", 20, product="Lavagem"),
    ... ]
    >>> profile = calculate_crm_metrics(sales).profiles[0]
    >>> profile.total_visits, profile.total_washes, profile.total_dries
    (2, 2, 1)
    """
    return CrmProfileBuilder(config).build(sales, registry)


def get_profile(
    name: str,
    sales: Sequence[Sale],
    registry: Iterable[CustomerRecord] | None = None,
    config: EngineConfig | None = None,
) -> CustomerProfile | None:
    """Build the profile of a single customer, or None if they have no sales.

    Recency is still measured against the latest transaction of the whole
    dataset and cycle prices are derived from all sales, so the result equals
    the matching entry of :func:`calculate_crm_metrics`.
    """
    builder = CrmProfileBuilder(config)
    valid = [sale for sale in sales if sale.is_valid()]
    today = max((sale.timestamp for sale in valid), default=None)
    if today is None:
        return None

    registry_records = list(registry or ())
    resolver = CustomerIdentityResolver(registry_records)
    groups = builder.group_sales(valid, resolver)
    key = normalize_name(name)
    customer_sales = groups.get(key)
    if not customer_sales:
        return None

    estimator = BasketEstimator.from_sales(valid, builder.classifier, builder.config)
    return builder.build_profile(
        key, customer_sales, today, estimator, resolver.lookup(key, customer_sales)
    )
