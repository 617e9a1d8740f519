"""Shared utilities for pandas conversion operations."""

import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import pandas as pd  # type: ignore

from laundry_crm.foundation.records import to_wall_clock


def decimal_to_float(value: Optional[Decimal]) -> Optional[float]:
    """Convert Decimal to float for pandas compatibility (None stays None)."""
    if value is None:
        return None
    return float(value)


def cell_to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a numeric cell to Decimal, avoiding float noise.

    Missing cells (None, NaN, NaT) become None.

    Example:
        >>> cell_to_decimal(12.3)
        Decimal('12.3')
        >>> cell_to_decimal(float("nan")) is None
        True
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return Decimal(str(value))


def cell_to_datetime(value: Any) -> Optional[datetime]:
    """Convert a timestamp cell to a naive Python datetime (offsets dropped)."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return to_wall_clock(pd.to_datetime(value).to_pydatetime())


def cell_to_int(value: Any) -> Optional[int]:
    """Convert a numeric cell to int, mapping missing cells to None."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return int(value)


def cell_to_str(value: Any) -> str:
    """Convert a text cell to str, mapping missing cells to ''."""
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value)
