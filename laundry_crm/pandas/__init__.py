"""Pandas DataFrame adapters for laundromat CRM components."""

from .profiles import profiles_to_dataframe, summary_to_dataframe
from .records import (
    orders_from_dataframe,
    reconciliation_to_dataframe,
    sales_from_dataframe,
)
from .segments import segments_to_dataframe

__all__ = [
    # Profile adapters
    "profiles_to_dataframe",
    "summary_to_dataframe",
    # Segmentation adapters
    "segments_to_dataframe",
    # Record adapters
    "orders_from_dataframe",
    "reconciliation_to_dataframe",
    "sales_from_dataframe",
]
