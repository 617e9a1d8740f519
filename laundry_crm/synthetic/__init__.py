"""Synthetic data generation and validation utilities.

This package produces realistic-but-fake laundromat sales and machine orders
to exercise the reconciliation and CRM pipelines without production data.
"""

from .generator import (
    LaundryCustomer,
    LaundryScenario,
    generate_activity,
    generate_customers,
    generate_second_source,
)
from .scenarios import (
    BASELINE_SCENARIO,
    HIGH_CHURN_SCENARIO,
    LAVATERIA_SCENARIO,
    TWO_SOURCE_SCENARIO,
    WASH_ONLY_HEAVY_SCENARIO,
)
from .validation import (
    ValidationResult,
    check_no_duplicate_orders,
    check_valid_records,
    check_visit_partition,
)

__all__ = [
    "LaundryCustomer",
    "LaundryScenario",
    "generate_activity",
    "generate_customers",
    "generate_second_source",
    "BASELINE_SCENARIO",
    "HIGH_CHURN_SCENARIO",
    "LAVATERIA_SCENARIO",
    "TWO_SOURCE_SCENARIO",
    "WASH_ONLY_HEAVY_SCENARIO",
    "ValidationResult",
    "check_no_duplicate_orders",
    "check_valid_records",
    "check_visit_partition",
]
