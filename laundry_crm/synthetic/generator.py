from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
import math
import random
from typing import List, Optional, Sequence, Tuple

from laundry_crm.foundation.records import Order, Sale

WALK_IN_NAME = "CONSUMIDOR FINAL"

FIRST_NAMES = (
    "Ana", "Bruno", "Carla", "Daniel", "Eduarda", "Felipe", "Gabriela",
    "Henrique", "Isabela", "João", "Karina", "Lucas", "Mariana", "Nicolas",
    "Olivia", "Paulo", "Rafaela", "Samuel", "Tatiane", "Vinicius",
)
LAST_NAMES = (
    "Almeida", "Barbosa", "Cardoso", "Costa", "Dias", "Ferreira", "Gomes",
    "Lima", "Martins", "Moreira", "Oliveira", "Pereira", "Ribeiro", "Rocha",
    "Santos", "Silva", "Souza", "Teixeira", "Vieira", "Xavier",
)


@dataclass(frozen=True)
class LaundryCustomer:
    customer_id: str
    name: str
    phone: str
    home_store: str
    acquisition_date: date


@dataclass(frozen=True)
class LaundryScenario:
    """Configuration for the laundromat activity generator.

    Attributes
    ----------
    stores: Store names; a name containing "Lavateria" gets numbered machines
        (even = washer, odd = dryer).
    machines_per_type: Washers (and dryers) installed in each store.
    visits_per_month: Average visits per active customer per month.
    dry_probability: Chance a visit includes a drying cycle.
    extra_wash_probability: Chance a visit includes a second wash.
    walk_in_share: Share of visits recorded under the walk-in placeholder.
    churn_hazard: Monthly probability that an active customer stops coming.
    wash_price, dry_price: Cycle prices.
    duplicate_order_rate: Share of orders re-exported by a second source.
    max_clock_skew_minutes: Largest clock difference between the two sources.
    seed: Optional RNG seed for reproducibility.
    """

    stores: Tuple[str, ...] = ("Centro", "Lavateria Sul")
    machines_per_type: int = 4
    visits_per_month: float = 2.0
    dry_probability: float = 0.6
    extra_wash_probability: float = 0.2
    walk_in_share: float = 0.1
    churn_hazard: float = 0.05
    wash_price: Decimal = Decimal("18.00")
    dry_price: Decimal = Decimal("16.00")
    duplicate_order_rate: float = 0.0
    max_clock_skew_minutes: int = 3
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.stores:
            raise ValueError("at least one store is required")
        if self.machines_per_type <= 0:
            raise ValueError("machines_per_type must be positive")
        for name in (
            "dry_probability",
            "extra_wash_probability",
            "walk_in_share",
            "churn_hazard",
            "duplicate_order_rate",
        ):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be within [0, 1]: {value}")
        if self.max_clock_skew_minutes < 0:
            raise ValueError("max_clock_skew_minutes cannot be negative")


def generate_customers(
    n: int,
    start: date,
    end: date,
    *,
    stores: Sequence[str] = LaundryScenario.stores,
    seed: Optional[int] = None,
) -> List[LaundryCustomer]:
    """Generate ``n`` customers with acquisition dates uniformly between start/end."""

    if n <= 0:
        return []
    if start > end:
        raise ValueError("start date must be <= end date")

    rng = random.Random(seed)
    total_days = (end - start).days + 1
    combos = [(first, last) for first in FIRST_NAMES for last in LAST_NAMES]
    rng.shuffle(combos)

    customers: List[LaundryCustomer] = []
    for i in range(n):
        first, last = combos[i % len(combos)]
        name = f"{first} {last}"
        if i >= len(combos):
            name = f"{name} {i // len(combos) + 1}"
        customers.append(
            LaundryCustomer(
                customer_id=f"C-{i + 1}",
                name=name,
                phone=f"1199{rng.randrange(1000000, 9999999)}",
                home_store=rng.choice(list(stores)),
                acquisition_date=start + timedelta(days=rng.randrange(total_days)),
            )
        )
    return customers


def _poisson(rng: random.Random, lam: float) -> int:
    # Knuth's algorithm, fine for the small rates used here
    if lam <= 0:
        return 0
    limit = math.exp(-lam)
    k = 0
    p = 1.0
    while p > limit:
        k += 1
        p *= rng.random()
    return k - 1


class _MachineBook:
    """Keeps two cycles from running on the same machine at once."""

    def __init__(self, rng: random.Random, machines_per_type: int) -> None:
        self.rng = rng
        self.machines_per_type = machines_per_type
        self.busy: dict[tuple[str, str], List[Tuple[datetime, datetime]]] = {}

    @staticmethod
    def label(store: str, is_wash: bool, slot: int) -> str:
        if "lavateria" in store.lower():
            number = 2 * slot + (2 if is_wash else 1)
            return f"{number:02d}"
        return f"{'L' if is_wash else 'S'}{slot + 1}"

    def book(self, store: str, is_wash: bool, start: datetime) -> str:
        end = start + timedelta(minutes=60)
        slots = list(range(self.machines_per_type))
        self.rng.shuffle(slots)
        for slot in slots:
            label = self.label(store, is_wash, slot)
            intervals = self.busy.setdefault((store, label), [])
            if all(end <= s or start >= e for s, e in intervals):
                intervals.append((start, end))
                return label
        # Store is full; the customer waits for the first machine to free up
        return self.label(store, is_wash, slots[0])


def generate_activity(
    customers: Sequence[LaundryCustomer],
    start: date,
    end: date,
    *,
    scenario: Optional[LaundryScenario] = None,
) -> Tuple[List[Sale], List[Order]]:
    """Generate sales and the matching machine orders between ``start`` and ``end``.

    Every cycle is sold separately, so each sale has exactly one order
    reported a few minutes later by the machine controller. Sales carry no
    items; attaching them is the reconciler's job.
    """

    if start > end:
        raise ValueError("start date must be <= end date")
    scenario = scenario or LaundryScenario()
    rng = random.Random(scenario.seed)
    total_days = (end - start).days + 1
    months = max(1, math.ceil(total_days / 30))

    sales: List[Sale] = []
    orders: List[Order] = []
    sale_seq = order_seq = 1
    machines = _MachineBook(rng, scenario.machines_per_type)

    for cust in customers:
        if cust.acquisition_date > end:
            continue
        first_day = max(start, cust.acquisition_date)
        active_days = (end - first_day).days + 1
        for month in range(months):
            if month and rng.random() < scenario.churn_hazard:
                break
            month_start = first_day + timedelta(days=30 * month)
            if month_start > end:
                break
            for _ in range(_poisson(rng, scenario.visits_per_month)):
                offset = rng.randrange(min(30, active_days - 30 * month))
                day = month_start + timedelta(days=offset)
                visit_start = datetime(
                    day.year, day.month, day.day, 7 + rng.randrange(14), rng.randrange(60)
                )
                walk_in = rng.random() < scenario.walk_in_share
                name = WALK_IN_NAME if walk_in else cust.name
                store = cust.home_store

                cycles = [(True, 0)]
                if rng.random() < scenario.extra_wash_probability:
                    cycles.append((True, 2))
                if rng.random() < scenario.dry_probability:
                    cycles.append((False, 40 + rng.randrange(10)))

                for is_wash, minutes in cycles:
                    moment = visit_start + timedelta(minutes=minutes)
                    price = scenario.wash_price if is_wash else scenario.dry_price
                    sales.append(
                        Sale(
                            sale_id=f"S-{sale_seq}",
                            timestamp=moment,
                            store=store,
                            customer=name,
                            value=price,
                            product="Lavagem" if is_wash else "Secagem",
                            payment_method="credit",
                            phone="" if walk_in else cust.phone,
                            customer_id=None if walk_in else cust.customer_id,
                        )
                    )
                    sale_seq += 1
                    orders.append(
                        Order(
                            order_id=f"P-{order_seq}",
                            timestamp=moment + timedelta(minutes=rng.randrange(1, 10)),
                            store=store,
                            customer=name,
                            machine=machines.book(store, is_wash, moment),
                            service="Lavagem 30 min" if is_wash else "Secagem 45 min",
                            status="SUCESSO",
                            value=price,
                        )
                    )
                    order_seq += 1

    sales.sort(key=lambda s: (s.timestamp, s.sale_id))
    orders.sort(key=lambda o: (o.timestamp, o.order_id))
    return sales, orders


def generate_second_source(
    orders: Sequence[Order],
    *,
    scenario: Optional[LaundryScenario] = None,
) -> List[Order]:
    """Re-export a share of ``orders`` the way a second integration would.

    The copies have no order id, a skewed clock, zero-padded machine labels,
    a few cents of rounding noise and placeholder service/status text.
    """

    scenario = scenario or LaundryScenario()
    rng = random.Random(scenario.seed)
    copies: List[Order] = []
    for order in orders:
        if order.timestamp is None or rng.random() >= scenario.duplicate_order_rate:
            continue
        skew = rng.randint(-scenario.max_clock_skew_minutes, scenario.max_clock_skew_minutes)
        noise = Decimal(rng.randint(-3, 3)) / 100
        copies.append(
            replace(
                order,
                order_id=None,
                timestamp=order.timestamp + timedelta(minutes=skew),
                machine=order.machine.zfill(3),
                service="Unknown",
                status="Unknown",
                value=order.value + noise,
            )
        )
    return copies
