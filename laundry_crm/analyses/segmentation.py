"""Period segmentation for outreach campaigns.

Splits the customers active in a reporting period into wash-only, dry-only
and wash-and-dry groups so that, for example, wash-only customers can be
offered a drying promotion. Customers whose purchases could not be
classified are kept in their own list with a tag explaining why, so the
data can be fixed by hand.

Visits here are distinct calendar days with activity, which is coarser than
the time-window visits used for profiles.
"""

from __future__ import annotations

import logging
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Sequence

from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.cycles import BasketEstimator, CycleClassifier, CycleCounts
from laundry_crm.foundation.records import Sale, is_excluded_customer

logger = logging.getLogger(__name__)

MONEY_PRECISION = Decimal("0.01")

#: Retail products sold at the counter that are not machine cycles.
PRODUCT_KEYWORDS = (
    "detergente",
    "amaciante",
    "sabao",
    "sabonete",
    "cartao",
    "fidelidade",
    "sacola",
    "saco",
)

PRODUCT_TAG = "[PRODUCT]"
LINK_ERROR_TAG = "[LINK_ERROR]"
OTHER_TAG = "[OTHER]"

MIN_PHONE_LENGTH = 6


class Segment(str, Enum):
    ONLY_WASH = "only_wash"
    ONLY_DRY = "only_dry"
    WASH_AND_DRY = "wash_and_dry"
    UNCLASSIFIED = "unclassified"


def segment_for(wash: int, dry: int) -> Segment:
    """Segment for a customer's period wash and dry counts.

    >>> segment_for(3, 0).value
    'only_wash'
    >>> segment_for(2, 2).value
    'wash_and_dry'
    >>> segment_for(0, 0).value
    'unclassified'
    """
    if wash > 0 and dry == 0:
        return Segment.ONLY_WASH
    if dry > 0 and wash == 0:
        return Segment.ONLY_DRY
    if wash > 0 and dry > 0:
        return Segment.WASH_AND_DRY
    return Segment.UNCLASSIFIED


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def is_retail_product(product: str) -> bool:
    """True for counter products such as detergent or loyalty cards."""
    folded = _fold(product)
    return any(keyword in folded for keyword in PRODUCT_KEYWORDS)


def diagnose_unclassified(sale: Sale) -> str:
    """Explain why a customer's latest sale produced no wash or dry cycle."""
    if is_retail_product(sale.product):
        return f"{PRODUCT_TAG} {sale.product} ({sale.value:.2f})"
    if sale.items:
        dump = ", ".join(f"{item.machine}/{item.service}" for item in sale.items)
        return f"{LINK_ERROR_TAG} Items: {dump}"
    return f"{OTHER_TAG} {sale.product} ({sale.value:.2f})"


@dataclass(frozen=True)
class SegmentedCustomer:
    """A customer active in the period, with their period cycle counts."""

    name: str
    phone: str
    wash_count: int
    dry_count: int
    total_spent: Decimal
    last_visit: datetime
    debug_info: str = ""
    preferred_store: str | None = None

    @property
    def segment(self) -> Segment:
        return segment_for(self.wash_count, self.dry_count)

    @property
    def balanced(self) -> bool:
        return self.segment is Segment.WASH_AND_DRY and self.wash_count == self.dry_count

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "phone": self.phone,
            "wash_count": self.wash_count,
            "dry_count": self.dry_count,
            "total_spent": float(self.total_spent),
            "last_visit": self.last_visit.isoformat(),
            "debug_info": self.debug_info,
            "preferred_store": self.preferred_store,
            "segment": self.segment.value,
            "balanced": self.balanced,
        }


@dataclass(frozen=True)
class PeriodStats:
    """Segment counts, member lists and financials for one period."""

    active_customers: int = 0
    new_customers: int = 0
    new_customers_list: list[str] = field(default_factory=list)
    only_wash: list[SegmentedCustomer] = field(default_factory=list)
    only_dry: list[SegmentedCustomer] = field(default_factory=list)
    wash_and_dry: list[SegmentedCustomer] = field(default_factory=list)
    unclassified: list[SegmentedCustomer] = field(default_factory=list)
    total_revenue: Decimal = Decimal("0.00")
    total_visits: int = 0
    avg_ticket: Decimal = Decimal("0.00")
    avg_ltv: Decimal = Decimal("0.00")

    def __post_init__(self) -> None:
        if self.new_customers > self.active_customers:
            raise ValueError(
                f"New customers ({self.new_customers}) cannot exceed active customers "
                f"({self.active_customers})"
            )

    @property
    def only_wash_count(self) -> int:
        return len(self.only_wash)

    @property
    def only_dry_count(self) -> int:
        return len(self.only_dry)

    @property
    def wash_and_dry_count(self) -> int:
        return len(self.wash_and_dry)

    @property
    def wash_and_dry_balanced_count(self) -> int:
        return sum(1 for customer in self.wash_and_dry if customer.balanced)

    def as_dict(self) -> dict[str, object]:
        return {
            "active_customers": self.active_customers,
            "new_customers": self.new_customers,
            "new_customers_list": list(self.new_customers_list),
            "only_wash_count": self.only_wash_count,
            "only_dry_count": self.only_dry_count,
            "wash_and_dry_count": self.wash_and_dry_count,
            "wash_and_dry_balanced_count": self.wash_and_dry_balanced_count,
            "only_wash": [c.as_dict() for c in self.only_wash],
            "only_dry": [c.as_dict() for c in self.only_dry],
            "wash_and_dry": [c.as_dict() for c in self.wash_and_dry],
            "unclassified": [c.as_dict() for c in self.unclassified],
            "total_revenue": float(self.total_revenue),
            "total_visits": self.total_visits,
            "avg_ticket": float(self.avg_ticket),
            "avg_ltv": float(self.avg_ltv),
        }


def filter_period(sales: Iterable[Sale], start: datetime, end: datetime) -> list[Sale]:
    """Valid sales with ``start <= timestamp < end``.

    Raises
    ------
    ValueError
        If ``start`` is not before ``end``.
    """
    if start >= end:
        raise ValueError(f"Period start must be before end: {start} >= {end}")
    return [
        sale for sale in sales if sale.is_valid() and start <= sale.timestamp < end
    ]


def _ratio(part: Decimal, whole: int) -> Decimal:
    if not whole:
        return Decimal("0.00")
    return (part / whole).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def calculate_period_stats(
    period_sales: Sequence[Sale],
    all_sales: Sequence[Sale],
    config: EngineConfig | None = None,
    classifier: CycleClassifier | None = None,
) -> PeriodStats:
    """Segment the customers active in a period.

    Parameters
    ----------
    period_sales:
        Sales inside the reporting period (see :func:`filter_period`).
    all_sales:
        Full history, used for the new-customer lookback, phone numbers and
        reference cycle prices.
    config:
        Engine configuration.
    classifier:
        Cycle classifier; defaults to one built from ``config``.

    Returns
    -------
    PeriodStats
        Empty stats when no customer was active.
    """
    config = config or DEFAULT_CONFIG

    customers: dict[str, list[Sale]] = {}
    total_revenue = Decimal("0")
    for sale in period_sales:
        if not sale.is_valid() or is_excluded_customer(sale.customer):
            continue
        customers.setdefault(sale.customer_key, []).append(sale)
        total_revenue += sale.value

    if not customers:
        logger.info("No active customers in period")
        return PeriodStats()

    valid_history = [sale for sale in all_sales if sale.is_valid()]
    history: dict[str, list[datetime]] = {}
    phones: dict[str, tuple[datetime, str]] = {}
    for sale in valid_history:
        key = sale.customer_key
        if key not in customers:
            continue
        history.setdefault(key, []).append(sale.timestamp)
        if sale.phone and len(sale.phone) >= MIN_PHONE_LENGTH:
            if key not in phones or sale.timestamp >= phones[key][0]:
                phones[key] = (sale.timestamp, sale.phone)

    estimator = BasketEstimator.from_sales(valid_history, classifier, config)
    gap = timedelta(days=config.new_customer_gap_days)

    new_customers: list[str] = []
    segments: dict[Segment, list[SegmentedCustomer]] = {segment: [] for segment in Segment}
    total_visits = 0

    for name, sales in customers.items():
        sales = sorted(sales, key=lambda sale: sale.timestamp)
        total_visits += len({sale.timestamp.date() for sale in sales})

        first = sales[0].timestamp
        prior = [moment for moment in history.get(name, ()) if moment < first]
        if not prior or first - max(prior) > gap:
            new_customers.append(name)

        counts = sum(
            (
                estimator.count_sale(
                    sale, allow_approximate=config.segment_with_approximate_baskets
                )
                for sale in sales
            ),
            CycleCounts(),
        )

        last_sale = sales[-1]
        segment = segment_for(counts.wash, counts.dry)
        if segment is Segment.UNCLASSIFIED:
            debug_info = diagnose_unclassified(last_sale)
        else:
            debug_info = f"{last_sale.product} (items: {len(last_sale.items)})"

        store_counts = Counter(sale.store for sale in sales if sale.store)
        preferred = store_counts.most_common(1)
        phone = phones.get(name, (None, ""))[1]

        segments[segment].append(
            SegmentedCustomer(
                name=name,
                phone=phone,
                wash_count=counts.wash,
                dry_count=counts.dry,
                total_spent=sum((sale.value for sale in sales), Decimal("0")),
                last_visit=last_sale.timestamp,
                debug_info=debug_info,
                preferred_store=preferred[0][0] if preferred else None,
            )
        )

    active = len(customers)
    stats = PeriodStats(
        active_customers=active,
        new_customers=len(new_customers),
        new_customers_list=new_customers,
        only_wash=segments[Segment.ONLY_WASH],
        only_dry=segments[Segment.ONLY_DRY],
        wash_and_dry=segments[Segment.WASH_AND_DRY],
        unclassified=segments[Segment.UNCLASSIFIED],
        total_revenue=total_revenue.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP),
        total_visits=total_visits,
        avg_ticket=_ratio(total_revenue, total_visits),
        avg_ltv=_ratio(total_revenue, active),
    )
    logger.info(
        "Segmented %d active customers: %d wash only, %d dry only, %d both, %d unclassified",
        active,
        stats.only_wash_count,
        stats.only_dry_count,
        stats.wash_and_dry_count,
        len(stats.unclassified),
    )
    return stats
