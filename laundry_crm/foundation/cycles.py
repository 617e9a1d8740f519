"""Wash/dry cycle classification and implied basket estimation.

Point-of-sale exports describe machine cycles with free text: a service
label, a machine label and the store name. Classification is an ordered
chain of rules; the first rule with an opinion wins. When a sale carries no
item breakdown, its value is compared with a reference single-cycle price to
infer how many baskets it paid for.

Quick Start
-----------
>>> from laundry_crm.foundation.cycles import CycleClassifier
>>> classifier = CycleClassifier()
>>> classifier.classify("Lavagem 30 min", "", "Centro")
CycleType(is_wash=True, is_dry=False)
>>> classifier.classify("", "Máquina 7", "Lavateria Sul")
CycleType(is_wash=False, is_dry=True)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Protocol, Sequence

from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.records import Sale


@dataclass(frozen=True)
class CycleType:
    """Result of classifying a single cycle label."""

    is_wash: bool
    is_dry: bool

    @property
    def classified(self) -> bool:
        return self.is_wash or self.is_dry


UNCLASSIFIED = CycleType(is_wash=False, is_dry=False)


class CycleRule(Protocol):
    """A classification rule. Returns None when it has no opinion."""

    def __call__(self, service: str, machine: str, store: str) -> CycleType | None: ...


_DIGITS = re.compile(r"\d+")


class ParityRule:
    """Stores numbering their machines instead of naming them.

    In these stores even machine numbers are washers and odd numbers are
    dryers, whatever the service label says.
    """

    def __init__(self, store_markers: Sequence[str] = ("LAVATERIA",)) -> None:
        self.store_markers = tuple(marker.upper() for marker in store_markers)

    def __call__(self, service: str, machine: str, store: str) -> CycleType | None:
        store_upper = (store or "").upper()
        if not any(marker in store_upper for marker in self.store_markers):
            return None
        match = _DIGITS.search(machine or "")
        if match is None:
            return None
        number = int(match.group(0))
        return CycleType(is_wash=number % 2 == 0, is_dry=number % 2 != 0)


class KeywordRule:
    """Portuguese wash/dry tokens and the cycle durations tied to each type."""

    WASH_SERVICE = re.compile(r"lav|30\s*min|35\s*min", re.IGNORECASE)
    DRY_SERVICE = re.compile(r"sec|45\s*min|15\s*min", re.IGNORECASE)
    WASH_MACHINE = re.compile(r"lav|^l\d", re.IGNORECASE)
    DRY_MACHINE = re.compile(r"sec|^s\d", re.IGNORECASE)

    def __call__(self, service: str, machine: str, store: str) -> CycleType | None:
        service = service or ""
        machine = machine or ""
        is_wash = bool(
            self.WASH_SERVICE.search(service) or self.WASH_MACHINE.search(machine)
        )
        is_dry = bool(
            self.DRY_SERVICE.search(service) or self.DRY_MACHINE.search(machine)
        )
        if not (is_wash or is_dry):
            return None
        return CycleType(is_wash=is_wash, is_dry=is_dry)


DEFAULT_RULES: tuple[CycleRule, ...] = (ParityRule(), KeywordRule())


class CycleClassifier:
    """Classify cycle labels with an ordered chain of rules."""

    def __init__(self, rules: Iterable[CycleRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "CycleClassifier":
        return cls((ParityRule(config.parity_store_markers), KeywordRule()))

    def classify(self, service: str, machine: str, store: str) -> CycleType:
        for rule in self.rules:
            result = rule(service, machine, store)
            if result is not None:
                return result
        return UNCLASSIFIED


@dataclass(frozen=True)
class CycleCounts:
    """Wash and dry cycles attributed to one sale (or summed over many).

    Attributes
    ----------
    wash:
        Number of wash cycles.
    dry:
        Number of dry cycles.
    approximate:
        True when the counts come from the even wash/dry split applied to a
        sale with no classification at all.
    unclassified_items:
        Number of attached items no rule could classify.
    """

    wash: int = 0
    dry: int = 0
    approximate: bool = False
    unclassified_items: int = 0

    def __post_init__(self) -> None:
        if self.wash < 0 or self.dry < 0:
            raise ValueError(
                f"Cycle counts cannot be negative: wash={self.wash}, dry={self.dry}"
            )

    @property
    def total(self) -> int:
        return self.wash + self.dry

    def __add__(self, other: "CycleCounts") -> "CycleCounts":
        return CycleCounts(
            wash=self.wash + other.wash,
            dry=self.dry + other.dry,
            approximate=self.approximate or other.approximate,
            unclassified_items=self.unclassified_items + other.unclassified_items,
        )


NO_CYCLES = CycleCounts()

_DEFAULT_STORE = "DEFAULT"


def _store_key(store: str | None) -> str:
    return (store or _DEFAULT_STORE).upper()


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class CyclePriceReference:
    """Reference single-cycle prices, globally and per store."""

    global_price: Decimal
    store_prices: Mapping[str, Decimal]
    default_price: Decimal = DEFAULT_CONFIG.default_cycle_price

    @classmethod
    def from_sales(
        cls, sales: Iterable[Sale], config: EngineConfig = DEFAULT_CONFIG
    ) -> "CyclePriceReference":
        """Derive reference prices from plausible single-cycle sale values.

        The global price is a low percentile of in-range values rather than
        the minimum, so that an occasional discounted cycle does not drag it
        down. Store prices are the minimum in-range value seen per store.
        """
        candidates: list[Decimal] = []
        store_prices: dict[str, Decimal] = {}
        for sale in sales:
            if not sale.is_valid():
                continue
            value = sale.value
            if config.min_cycle_price <= value <= config.max_cycle_price:
                candidates.append(value)
                key = _store_key(sale.store)
                if key not in store_prices or value < store_prices[key]:
                    store_prices[key] = value

        global_price = config.default_cycle_price
        if candidates:
            candidates.sort()
            index = math.floor(len(candidates) * config.cycle_price_percentile)
            global_price = candidates[min(index, len(candidates) - 1)]

        return cls(
            global_price=global_price,
            store_prices=store_prices,
            default_price=config.default_cycle_price,
        )

    def unit_price(self, store: str | None) -> Decimal:
        for candidate in (
            self.store_prices.get(_store_key(store)),
            self.global_price,
            self.default_price,
        ):
            if candidate is not None and candidate.is_finite() and candidate > 0:
                return candidate
        return DEFAULT_CONFIG.default_cycle_price


class BasketEstimator:
    """Count wash and dry cycles per sale.

    Sales with attached items are counted item by item. Sales without items
    are classified from their product text and, when their value implies
    several cycles, scaled by the reference unit price.
    """

    def __init__(
        self,
        prices: CyclePriceReference,
        classifier: CycleClassifier | None = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.prices = prices
        self.classifier = classifier or CycleClassifier.from_config(config)
        self.config = config

    @classmethod
    def from_sales(
        cls,
        sales: Iterable[Sale],
        classifier: CycleClassifier | None = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> "BasketEstimator":
        return cls(CyclePriceReference.from_sales(sales, config), classifier, config)

    def count_sale(self, sale: Sale, allow_approximate: bool = True) -> CycleCounts:
        if not sale.is_valid():
            return NO_CYCLES

        if sale.items:
            wash = dry = unclassified = 0
            for item in sale.items:
                cycle = self.classifier.classify(item.service, item.machine, sale.store)
                wash += cycle.is_wash
                dry += cycle.is_dry
                unclassified += not cycle.classified
            return CycleCounts(wash=wash, dry=dry, unclassified_items=unclassified)

        cycle = self.classifier.classify(sale.product, "", sale.store)
        wash, dry = int(cycle.is_wash), int(cycle.is_dry)
        unit_price = self.prices.unit_price(sale.store)
        implied = max(0, _round_half_up(sale.value / unit_price))

        if not cycle.classified:
            if implied > 0 and allow_approximate:
                return CycleCounts(
                    wash=math.ceil(implied / 2),
                    dry=implied // 2,
                    approximate=True,
                )
            return NO_CYCLES

        if sale.value > unit_price * self.config.multi_basket_multiplier and implied > 1:
            if wash and not dry:
                wash = implied
            elif dry and not wash:
                dry = implied
        return CycleCounts(wash=wash, dry=dry)
