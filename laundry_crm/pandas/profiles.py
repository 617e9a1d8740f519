"""Pandas DataFrame adapters for customer profiles."""

from typing import List, Sequence

import pandas as pd  # type: ignore

from laundry_crm.analyses.profiles import CrmSummary, CustomerProfile
from ._utils import decimal_to_float

PROFILE_COLUMNS = [
    "name",
    "total_spent",
    "total_visits",
    "average_ticket",
    "total_washes",
    "total_dries",
    "total_cycles",
    "avg_baskets_per_visit",
    "first_visit_date",
    "last_visit_date",
    "recency_days",
    "average_interval_days",
    "churn_risk",
    "next_predicted_visit",
    "spent_30d",
    "spent_90d",
    "spent_180d",
    "baskets_180d",
    "top_day",
    "top_shift",
    "preferred_store",
    "phone",
    "gender",
]


def profiles_to_dataframe(profiles: Sequence[CustomerProfile]) -> pd.DataFrame:
    """Convert customer profiles to a DataFrame, one row per customer.

    Args:
        profiles: CustomerProfile objects (or a CrmSummary's ``profiles``)

    Returns:
        DataFrame with the columns in ``PROFILE_COLUMNS``, in input order.
        Monetary columns are floats.

    Example:
        >>> summary = calculate_crm_metrics(sales)
        >>> df = profiles_to_dataframe(summary.profiles)
        >>> df[df["churn_risk"] == "high"]["phone"]
    """
    if not profiles:
        return pd.DataFrame(columns=PROFILE_COLUMNS)

    rows: List[dict] = [
        {
            "name": p.name,
            "total_spent": decimal_to_float(p.total_spent),
            "total_visits": p.total_visits,
            "average_ticket": decimal_to_float(p.average_ticket),
            "total_washes": p.total_washes,
            "total_dries": p.total_dries,
            "total_cycles": p.total_cycles,
            "avg_baskets_per_visit": decimal_to_float(p.avg_baskets_per_visit),
            "first_visit_date": p.first_visit_date,
            "last_visit_date": p.last_visit_date,
            "recency_days": p.recency_days,
            "average_interval_days": p.average_interval_days,
            "churn_risk": p.churn_risk.value,
            "next_predicted_visit": p.next_predicted_visit,
            "spent_30d": decimal_to_float(p.spent_30d),
            "spent_90d": decimal_to_float(p.spent_90d),
            "spent_180d": decimal_to_float(p.spent_180d),
            "baskets_180d": p.baskets_180d,
            "top_day": p.top_day,
            "top_shift": p.top_shift,
            "preferred_store": p.preferred_store,
            "phone": p.phone,
            "gender": p.gender,
        }
        for p in profiles
    ]
    return pd.DataFrame(rows, columns=PROFILE_COLUMNS)


def summary_to_dataframe(summary: CrmSummary) -> pd.DataFrame:
    """Convert the global part of a CrmSummary to a single-row DataFrame."""
    stats = summary.customer_stats
    return pd.DataFrame(
        [
            {
                "total_customers": summary.total_customers,
                "total_revenue": decimal_to_float(summary.total_revenue),
                "total_visits": summary.total_visits,
                "total_cycles": summary.total_cycles,
                "global_average_ticket": decimal_to_float(
                    summary.global_average_ticket
                ),
                "wash_count": summary.wash_dry.wash_count,
                "dry_count": summary.wash_dry.dry_count,
                "conversion_rate": decimal_to_float(summary.wash_dry.conversion_rate),
                "active_30d": stats.active_30d,
                "new_customers": stats.new_customers,
                "recurring": stats.recurring,
                "retention_rate": decimal_to_float(stats.retention_rate),
                "churn_rate": decimal_to_float(stats.churn_rate),
                "unclassified_count": summary.unclassified_count,
            }
        ]
    )
