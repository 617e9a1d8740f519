"""Tests for occupancy heatmaps, machine saturation and flexible customers."""

from datetime import datetime
from decimal import Decimal

import numpy as np
import pytest

from laundry_crm.analyses import (
    AvailabilityMetrics,
    calculate_machine_availability,
    find_flexible_customers,
    occupancy_heatmap,
    visits_heatmap,
)
from laundry_crm.foundation.records import CycleItem, Sale

MONDAY = datetime(2024, 1, 1)


def _sale(sale_id, moment, customer="Ana", items=(), value=18, phone=""):
    return Sale(sale_id, moment, "Centro", customer, value, items=list(items), phone=phone)


def _wash(machine, value=18):
    return CycleItem(machine, "Lavagem", value=Decimal(value))


def _dry(machine, value=16):
    return CycleItem(machine, "Secagem", value=Decimal(value))


class TestHeatmaps:
    def test_occupancy_counts_transactions(self):
        sales = [
            _sale("1", MONDAY.replace(hour=9, minute=5)),
            _sale("2", MONDAY.replace(hour=9, minute=40)),
            _sale("3", datetime(2024, 1, 7, 23, 59)),
            Sale("4", None, "Centro", "Ana", 18),
        ]
        matrix = occupancy_heatmap(sales)
        assert matrix.shape == (7, 24)
        assert matrix[0, 9] == 2
        assert matrix[6, 23] == 1
        assert matrix.sum() == 3

    def test_visits_count_one_session_per_customer_and_hour(self):
        sales = [
            _sale("1", MONDAY.replace(hour=9, minute=5)),
            _sale("2", MONDAY.replace(hour=9, minute=40), customer="ana"),
            _sale("3", MONDAY.replace(hour=9, minute=45), customer="Bruno"),
        ]
        assert visits_heatmap(sales)[0, 9] == 2


class TestMachineAvailability:
    """Per-minute machine occupancy reduced to weekday x hour saturation."""

    @pytest.fixture
    def busy_monday(self):
        return [
            _sale("1", MONDAY.replace(hour=10), items=[_wash("L1"), _wash("L2")], value=36),
            _sale("2", MONDAY.replace(hour=14), items=[_dry("S1")], value=16),
        ]

    def test_saturation_uses_bottleneck_machine_type(self, busy_monday):
        metrics = calculate_machine_availability(busy_monday)
        assert (metrics.wash_machines, metrics.dry_machines) == (2, 1)
        assert metrics.saturation.shape == (7, 24)
        assert metrics.saturation_at(0, 10) == pytest.approx(1.0)
        assert metrics.saturation_at(0, 14) == pytest.approx(1.0)
        assert metrics.saturation_at(0, 11) == 0.0
        assert metrics.load[0, 10] == 2

    def test_peaks_and_recommendations(self, busy_monday):
        metrics = calculate_machine_availability(busy_monday)
        assert {(p.day, p.hour) for p in metrics.peak_hours} == {(0, 10), (0, 14)}
        assert metrics.peak_hours[0].label in {"Mon 10h", "Mon 14h"}
        assert any("full occupancy" in text for text in metrics.recommendations)

    def test_expansion_estimate(self, busy_monday):
        expansion = calculate_machine_availability(busy_monday).expansion
        assert expansion.captured_cycles_per_month == 8
        assert expansion.avg_ticket == Decimal("17.33")
        assert expansion.capacity_increase_pct == Decimal("66.67")
        assert expansion.estimated_payback_months > 0

    def test_saturation_is_averaged_over_observed_days(self, busy_monday):
        quiet_monday = _sale("3", datetime(2024, 1, 8, 18))
        metrics = calculate_machine_availability(busy_monday + [quiet_monday])
        assert metrics.saturation_at(0, 10) == pytest.approx(0.5)
        assert metrics.peak_hours == []

    def test_cycles_wrap_from_sunday_into_monday(self):
        sales = [_sale("1", datetime(2024, 1, 7, 23, 50), items=[_dry("S1")])]
        metrics = calculate_machine_availability(sales)
        assert metrics.saturation_at(6, 23) == pytest.approx(1.0)
        assert metrics.saturation_at(0, 0) == pytest.approx(1.0)
        assert metrics.saturation_at(0, 1) == 0.0

    def test_no_items_uses_fallback_ticket(self):
        metrics = calculate_machine_availability([_sale("1", MONDAY)])
        assert (metrics.wash_machines, metrics.dry_machines) == (1, 1)
        assert not metrics.saturation.any()
        assert metrics.expansion.avg_ticket == Decimal("35.00")
        assert metrics.expansion.estimated_payback_months == Decimal("0")

    def test_as_dict_is_json_friendly(self, busy_monday):
        payload = calculate_machine_availability(busy_monday).as_dict()
        assert len(payload["saturation"]) == 7
        assert isinstance(payload["load"][0][0], int)


class TestFlexibleCustomers:
    @pytest.fixture
    def saturation(self):
        matrix = np.zeros((7, 24))
        matrix[0, 10] = 0.8
        return matrix

    def test_customers_seen_at_peak_and_off_peak(self, saturation):
        sales = [
            _sale("1", MONDAY.replace(hour=10), phone="11988887777"),
            _sale("2", datetime(2024, 1, 8, 10, 30)),
            _sale("3", datetime(2024, 1, 9, 15)),
            _sale("4", MONDAY.replace(hour=10), customer="Bruno"),
            _sale("5", MONDAY.replace(hour=10), customer="Consumidor Final"),
            _sale("6", datetime(2024, 1, 9, 15), customer="Consumidor Final"),
        ]
        flexible = find_flexible_customers(sales, saturation)

        assert [c.name for c in flexible] == ["ANA"]
        ana = flexible[0]
        assert (ana.peak_visits, ana.off_peak_visits, ana.total_visits) == (2, 1, 3)
        assert (ana.preferred_peak_day, ana.preferred_peak_hour) == (0, 10)
        assert (ana.preferred_off_peak_day, ana.preferred_off_peak_hour) == (1, 15)
        assert ana.phone == "11988887777"
        assert ana.as_dict()["preferred_peak_day"] == "Mon"

    def test_threshold_is_strict(self, saturation):
        saturation[0, 10] = 0.6
        sales = [
            _sale("1", MONDAY.replace(hour=10)),
            _sale("2", datetime(2024, 1, 9, 15)),
        ]
        assert find_flexible_customers(sales, saturation) == []

    def test_accepts_metrics_and_limit(self, saturation):
        metrics = AvailabilityMetrics(
            wash_machines=1, dry_machines=1, saturation=saturation, load=np.zeros((7, 24))
        )
        sales = []
        for i, name in enumerate(["Ana", "Bruno", "Carla"]):
            sales.append(_sale(f"p{i}", MONDAY.replace(hour=10), customer=name))
            sales.append(_sale(f"o{i}", datetime(2024, 1, 9, 15), customer=name))
        assert len(find_flexible_customers(sales, metrics, limit=2)) == 2
