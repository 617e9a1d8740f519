"""Pandas DataFrame adapters for period segmentation."""

import pandas as pd  # type: ignore

from laundry_crm.analyses.segmentation import PeriodStats
from ._utils import decimal_to_float

SEGMENT_COLUMNS = [
    "segment",
    "name",
    "phone",
    "wash_count",
    "dry_count",
    "balanced",
    "total_spent",
    "last_visit",
    "preferred_store",
    "debug_info",
]


def segments_to_dataframe(stats: PeriodStats) -> pd.DataFrame:
    """Flatten every segment list of a PeriodStats into one DataFrame.

    Args:
        stats: PeriodStats from calculate_period_stats

    Returns:
        DataFrame with one row per active customer and a ``segment`` column
        (only_wash, only_dry, wash_and_dry, unclassified), ready for export
        to a messaging tool.

    Example:
        >>> stats = calculate_period_stats(period_sales, all_sales)
        >>> df = segments_to_dataframe(stats)
        >>> df[df["segment"] == "only_wash"].to_csv("dry_promo.csv")
    """
    customers = [
        *stats.only_wash,
        *stats.only_dry,
        *stats.wash_and_dry,
        *stats.unclassified,
    ]
    if not customers:
        return pd.DataFrame(columns=SEGMENT_COLUMNS)

    rows = [
        {
            "segment": c.segment.value,
            "name": c.name,
            "phone": c.phone,
            "wash_count": c.wash_count,
            "dry_count": c.dry_count,
            "balanced": c.balanced,
            "total_spent": decimal_to_float(c.total_spent),
            "last_visit": c.last_visit,
            "preferred_store": c.preferred_store,
            "debug_info": c.debug_info,
        }
        for c in customers
    ]
    return pd.DataFrame(rows, columns=SEGMENT_COLUMNS)
