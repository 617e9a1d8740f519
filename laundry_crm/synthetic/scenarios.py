"""Pre-configured scenario packs for synthetic laundromat data.

Examples
--------
>>> from laundry_crm.synthetic.scenarios import TWO_SOURCE_SCENARIO
>>> from laundry_crm.synthetic import generate_customers, generate_activity
>>> from datetime import date
>>>
>>> customers = generate_customers(50, date(2024, 1, 1), date(2024, 3, 31), seed=1)
>>> sales, orders = generate_activity(
...     customers, date(2024, 1, 1), date(2024, 3, 31), scenario=TWO_SOURCE_SCENARIO
... )
"""

from decimal import Decimal

from laundry_crm.synthetic.generator import LaundryScenario

# Two stores, moderate cadence, one source of orders
BASELINE_SCENARIO = LaundryScenario(seed=42)

# Same activity, but half of the orders arrive again from a second integration
TWO_SOURCE_SCENARIO = LaundryScenario(duplicate_order_rate=0.5, seed=42)

# Customers drift away quickly; most profiles should end up medium or high risk
HIGH_CHURN_SCENARIO = LaundryScenario(
    visits_per_month=1.0,
    churn_hazard=0.35,
    seed=42,
)

# Single self-service store with numbered machines and cheaper cycles
LAVATERIA_SCENARIO = LaundryScenario(
    stores=("Lavateria Central",),
    machines_per_type=3,
    wash_price=Decimal("15.00"),
    dry_price=Decimal("15.00"),
    seed=42,
)

# Almost nobody dries in the store, which is what the dry promotion targets
WASH_ONLY_HEAVY_SCENARIO = LaundryScenario(
    dry_probability=0.1,
    extra_wash_probability=0.4,
    seed=42,
)
