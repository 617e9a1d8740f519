"""Normalized transaction, order and customer registry records.

The import and sync pipelines hand the engine already-typed records: sales
from the point-of-sale export, standalone machine orders from a secondary
source, and an optional customer registry. This module defines those shapes
and the small amount of normalisation every downstream component relies on,
most importantly the soft customer identity (trimmed, upper-cased display
name).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

#: Placeholder used by the sources for missing status / service text.
UNKNOWN = "Unknown"

#: Generic customer names the point-of-sale uses for anonymous sales.
WALK_IN_NAMES = frozenset({"CONSUMIDOR FINAL", "PEDIDO BALCÃO", "PEDIDO BALCAO"})

#: Operator and test accounts that never represent real customers.
EXCLUDED_NAME_TOKENS = ("ADMIN", "TESTE")


def normalize_name(name: str | None) -> str:
    """Return the identity key for a customer display name."""
    return (name or "").strip().upper()


def is_walk_in(name: str | None) -> bool:
    """Return True for empty names and generic walk-in placeholders."""
    normalized = normalize_name(name)
    return not normalized or normalized in WALK_IN_NAMES


def is_excluded_customer(name: str | None) -> bool:
    """Return True when a name must not produce a customer profile."""
    if is_walk_in(name):
        return True
    normalized = normalize_name(name)
    return any(token in normalized for token in EXCLUDED_NAME_TOKENS)


def is_placeholder(value: Any) -> bool:
    """Return True for missing values and the ``Unknown`` placeholder."""
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped.lower() == UNKNOWN.lower()
    return False


def to_money(value: Any) -> Decimal | None:
    """Coerce a monetary value to ``Decimal``.

    Floats go through ``str`` to avoid binary representation noise. Returns
    None when the value cannot be parsed; non-finite values are returned as
    such so callers can tell "missing" from "garbage".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def to_wall_clock(moment: datetime) -> datetime:
    """Drop any UTC offset and keep the local wall-clock time.

    Stores report naive local times, while some exports append an offset
    (``Z`` or ``-03:00``) to the same local reading. All timestamps are
    compared as naive local times so calendar days, hours and shifts stay
    the ones the customer saw.
    """
    return moment.replace(tzinfo=None) if moment.tzinfo is not None else moment


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return to_wall_clock(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return to_wall_clock(
                datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            )
        except ValueError:
            return None
    return None


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = _parse_datetime(value)
    return parsed.date() if parsed is not None else None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class CycleItem:
    """One physical machine cycle attached to a sale.

    Attributes
    ----------
    machine:
        Free-text machine label (e.g. ``"Máquina 12"``).
    service:
        Free-text service label (e.g. ``"Lavagem 30 min"``).
    status:
        Cycle status as reported by the source.
    start_time:
        When the cycle started, if known.
    value:
        Price of this cycle, if known.
    item_id:
        Stable identifier used to avoid attaching the same cycle twice.
    """

    machine: str
    service: str
    status: str = UNKNOWN
    start_time: datetime | None = None
    value: Decimal | None = None
    item_id: str | None = None


def _item_from_mapping(raw: Any) -> CycleItem:
    if not isinstance(raw, Mapping):
        raise TypeError(f"sale items must be mappings, got {type(raw).__name__}")
    return CycleItem(
        machine=str(raw.get("machine") or ""),
        service=str(raw.get("service") or ""),
        status=str(raw.get("status") or UNKNOWN),
        start_time=_parse_datetime(raw.get("start_time")),
        value=to_money(raw.get("value")),
        item_id=_optional_str(raw.get("item_id")),
    )


@dataclass(slots=True)
class Sale:
    """A point-of-sale transaction.

    Sales are facts: the only mutation the engine performs is attaching
    enrichment items (and missing demographics) during reconciliation.
    """

    sale_id: str
    timestamp: datetime | None
    store: str
    customer: str
    value: Decimal
    product: str = ""
    payment_method: str = ""
    card_type: str = ""
    voucher_category: str = ""
    discount: Decimal = Decimal("0")
    phone: str = ""
    customer_id: str | None = None
    items: list[CycleItem] = field(default_factory=list)
    birth_date: date | None = None
    age: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.timestamp, datetime):
            self.timestamp = to_wall_clock(self.timestamp)
        money = to_money(self.value)
        self.value = money if money is not None else Decimal("NaN")
        discount = to_money(self.discount)
        self.discount = discount if discount is not None else Decimal("0")

    def is_valid(self) -> bool:
        """Return True when the sale has a timestamp and a finite value."""
        return isinstance(self.timestamp, datetime) and self.value.is_finite()

    @property
    def customer_key(self) -> str:
        return normalize_name(self.customer)

    def attach_item(self, item: CycleItem) -> bool:
        """Append an enrichment item unless one with the same id exists.

        Returns True when the item was appended.
        """
        if item.item_id is not None and any(
            existing.item_id == item.item_id for existing in self.items
        ):
            return False
        self.items.append(item)
        return True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Sale":
        items = [_item_from_mapping(raw) for raw in data.get("items") or ()]
        timestamp = _parse_datetime(data.get("timestamp"))
        value = to_money(data.get("value"))
        sale_id = _optional_str(data.get("sale_id"))
        if sale_id is None:
            stamp = timestamp.isoformat() if timestamp is not None else "nodate"
            sale_id = f"{data.get('store', '')}_{stamp}_{data.get('customer', '')}_{value}"
        age = data.get("age")
        return cls(
            sale_id=sale_id,
            timestamp=timestamp,
            store=str(data.get("store") or ""),
            customer=str(data.get("customer") or ""),
            value=value if value is not None else Decimal("NaN"),
            product=str(data.get("product") or ""),
            payment_method=str(data.get("payment_method") or ""),
            card_type=str(data.get("card_type") or ""),
            voucher_category=str(data.get("voucher_category") or ""),
            discount=to_money(data.get("discount")) or Decimal("0"),
            phone=str(data.get("phone") or ""),
            customer_id=_optional_str(data.get("customer_id")),
            items=items,
            birth_date=_parse_date(data.get("birth_date")),
            age=int(age) if age is not None else None,
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "sale_id": self.sale_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "store": self.store,
            "customer": self.customer,
            "value": float(self.value) if self.value.is_finite() else None,
            "product": self.product,
            "phone": self.phone,
            "customer_id": self.customer_id,
            "items": [
                {
                    "item_id": item.item_id,
                    "machine": item.machine,
                    "service": item.service,
                    "status": item.status,
                    "start_time": item.start_time.isoformat()
                    if item.start_time
                    else None,
                    "value": float(item.value) if item.value is not None else None,
                }
                for item in self.items
            ],
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
            "age": self.age,
        }


@dataclass(frozen=True, slots=True)
class Order:
    """A standalone machine cycle event from a secondary source.

    Orders share no identifier with sales; they are linked by time, store
    and customer name (see :mod:`laundry_crm.reconciliation`).
    """

    order_id: str | None
    timestamp: datetime | None
    store: str
    customer: str
    machine: str
    service: str
    status: str
    value: Decimal | None
    customer_id: str | None = None
    birth_date: date | None = None
    age: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", to_money(self.value))
        if isinstance(self.timestamp, datetime):
            object.__setattr__(self, "timestamp", to_wall_clock(self.timestamp))

    def is_valid(self) -> bool:
        return (
            isinstance(self.timestamp, datetime)
            and self.value is not None
            and self.value.is_finite()
        )

    @property
    def item_id(self) -> str:
        if self.order_id:
            return self.order_id
        stamp = self.timestamp.isoformat() if self.timestamp else "nodate"
        return f"{normalize_name(self.store)}|{self.machine.strip()}|{stamp}"

    def as_cycle_item(self) -> CycleItem:
        return CycleItem(
            machine=self.machine,
            service=self.service,
            status=self.status,
            start_time=self.timestamp,
            value=self.value,
            item_id=self.item_id,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Order":
        age = data.get("age")
        return cls(
            order_id=_optional_str(data.get("order_id")),
            timestamp=_parse_datetime(data.get("timestamp")),
            store=str(data.get("store") or ""),
            customer=str(data.get("customer") or ""),
            machine=str(data.get("machine") or ""),
            service=str(data.get("service") or ""),
            status=str(data.get("status") or UNKNOWN),
            value=to_money(data.get("value")),
            customer_id=_optional_str(data.get("customer_id")),
            birth_date=_parse_date(data.get("birth_date")),
            age=int(age) if age is not None else None,
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "order_id": self.order_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "store": self.store,
            "customer": self.customer,
            "machine": self.machine,
            "service": self.service,
            "status": self.status,
            "value": float(self.value) if self.value is not None else None,
            "customer_id": self.customer_id,
            "birth_date": self.birth_date.isoformat() if self.birth_date else None,
            "age": self.age,
        }


@dataclass(frozen=True)
class CustomerRecord:
    """Authoritative customer data from the external registry."""

    name: str
    customer_id: str | None = None
    cpf: str | None = None
    phone: str | None = None
    email: str | None = None
    gender: str = "U"
    registration_date: datetime | None = None

    def __post_init__(self) -> None:
        if self.gender not in {"M", "F", "U"}:
            raise ValueError(f"gender must be one of M, F, U: {self.gender!r}")
        if isinstance(self.registration_date, datetime):
            object.__setattr__(
                self, "registration_date", to_wall_clock(self.registration_date)
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CustomerRecord":
        gender = str(data.get("gender") or "U").strip().upper()[:1] or "U"
        return cls(
            name=str(data.get("name") or ""),
            customer_id=_optional_str(data.get("customer_id")),
            cpf=_optional_str(data.get("cpf")),
            phone=_optional_str(data.get("phone")),
            email=_optional_str(data.get("email")),
            gender=gender if gender in {"M", "F"} else "U",
            registration_date=_parse_datetime(data.get("registration_date")),
        )


def _load(
    rows: Iterable[Mapping[str, Any]], factory, kind: str, require_valid: bool
) -> list:
    records = []
    skipped = 0
    for idx, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise TypeError(
                f"{kind} rows must be mappings",
                {"index": idx, "type": type(row).__name__},
            )
        try:
            record = factory(row)
        except (TypeError, ValueError) as exc:
            logger.debug("Skipping malformed %s row %d: %s", kind, idx, exc)
            skipped += 1
            continue
        if require_valid and not record.is_valid():
            logger.debug("Skipping %s row %d without timestamp or value", kind, idx)
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning("Skipped %d malformed %s rows", skipped, kind)
    return records


def sales_from_mappings(rows: Iterable[Mapping[str, Any]]) -> list[Sale]:
    """Build sales from dictionaries, skipping malformed rows."""
    return _load(rows, Sale.from_mapping, "sale", require_valid=True)


def orders_from_mappings(rows: Iterable[Mapping[str, Any]]) -> list[Order]:
    """Build orders from dictionaries.

    Orders without a timestamp or value are kept so that the reconciler and
    the merge engine can count them as skipped.
    """
    return _load(rows, Order.from_mapping, "order", require_valid=False)


def customers_from_mappings(
    rows: Iterable[Mapping[str, Any]],
) -> list[CustomerRecord]:
    """Build registry records from dictionaries, skipping malformed rows."""
    return _load(rows, CustomerRecord.from_mapping, "customer", require_valid=False)
