"""Foundational building blocks for laundromat CRM analytics.

This package exposes the normalized record types, the engine configuration,
cycle classification and basket estimation, visit segmentation and the
bucketed time index shared by the reconciliation components.
"""

from .config import DEFAULT_CONFIG, EngineConfig
from .cycles import (
    BasketEstimator,
    CycleClassifier,
    CycleCounts,
    CyclePriceReference,
    CycleType,
    KeywordRule,
    ParityRule,
    UNCLASSIFIED,
)
from .matching import BucketedTimeIndex
from .records import (
    CustomerRecord,
    CycleItem,
    Order,
    Sale,
    customers_from_mappings,
    is_excluded_customer,
    is_walk_in,
    normalize_name,
    orders_from_mappings,
    sales_from_mappings,
)
from .visits import Visit, VisitSegmenter, segment_visits, shift_of

__all__ = [
    "DEFAULT_CONFIG",
    "EngineConfig",
    "BasketEstimator",
    "CycleClassifier",
    "CycleCounts",
    "CyclePriceReference",
    "CycleType",
    "KeywordRule",
    "ParityRule",
    "UNCLASSIFIED",
    "BucketedTimeIndex",
    "CustomerRecord",
    "CycleItem",
    "Order",
    "Sale",
    "customers_from_mappings",
    "is_excluded_customer",
    "is_walk_in",
    "normalize_name",
    "orders_from_mappings",
    "sales_from_mappings",
    "Visit",
    "VisitSegmenter",
    "segment_visits",
    "shift_of",
]
