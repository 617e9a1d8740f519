"""CRM analyses over reconciled sales.

1. Customer profiles and the CRM summary (churn risk, preferences, activity tiers)
2. Period segmentation into wash-only, dry-only and wash-and-dry customers
3. Occupancy heatmaps, machine saturation and off-peak outreach candidates
"""

from .occupancy import (
    AvailabilityMetrics,
    ExpansionEstimate,
    FlexibleCustomer,
    PeakHour,
    calculate_machine_availability,
    find_flexible_customers,
    occupancy_heatmap,
    visits_heatmap,
)
from .profiles import (
    ChurnRisk,
    CrmProfileBuilder,
    CrmSummary,
    CustomerIdentityResolver,
    CustomerProfile,
    CustomerStats,
    CycleDiagnostic,
    LastVisit,
    TimeSlot,
    WashDryStats,
    calculate_crm_metrics,
    classify_churn_risk,
    get_profile,
)
from .segmentation import (
    PeriodStats,
    Segment,
    SegmentedCustomer,
    calculate_period_stats,
    filter_period,
)

__all__ = [
    # Profiles
    "ChurnRisk",
    "CrmProfileBuilder",
    "CrmSummary",
    "CustomerIdentityResolver",
    "CustomerProfile",
    "CustomerStats",
    "CycleDiagnostic",
    "LastVisit",
    "TimeSlot",
    "WashDryStats",
    "calculate_crm_metrics",
    "classify_churn_risk",
    "get_profile",
    # Segmentation
    "PeriodStats",
    "Segment",
    "SegmentedCustomer",
    "calculate_period_stats",
    "filter_period",
    # Occupancy
    "AvailabilityMetrics",
    "ExpansionEstimate",
    "FlexibleCustomer",
    "PeakHour",
    "calculate_machine_availability",
    "find_flexible_customers",
    "occupancy_heatmap",
    "visits_heatmap",
]
