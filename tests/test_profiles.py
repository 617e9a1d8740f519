"""Tests for customer profiles and the CRM summary."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from laundry_crm.analyses import (
    ChurnRisk,
    CrmProfileBuilder,
    CustomerIdentityResolver,
    calculate_crm_metrics,
    classify_churn_risk,
    get_profile,
)
from laundry_crm.foundation.config import EngineConfig
from laundry_crm.foundation.records import CustomerRecord, CycleItem, Sale, sales_from_mappings

TODAY = datetime(2024, 6, 30, 12)


def _sale(sale_id, moment, customer, value=18, product="Lavagem", **kwargs):
    return Sale(sale_id, moment, "Centro", customer, value, product=product, **kwargs)


@pytest.fixture
def history():
    """Five customers spread over the activity tiers.

    ANA visits three times; the others once each. Prices stay within one unit
    cycle so every sale counts as exactly one basket.
    """
    return [
        _sale("a1", datetime(2024, 4, 1, 12), "Ana", 14, "Lavagem"),
        _sale("a2", datetime(2024, 5, 31, 12), "ana ", 15, "Secagem"),
        _sale("a3", datetime(2024, 6, 30, 10), "Ana", 16, "Lavagem"),
        _sale("b1", TODAY, "Bruno", 18),
        _sale("c1", datetime(2024, 5, 15, 12), "Carla", 18),
        _sale("d1", datetime(2024, 4, 15, 12), "Davi", 18),
        _sale("e1", datetime(2024, 1, 1, 12), "Eva", 18),
    ]


class TestChurnRisk:
    """Strict thresholds relative to the customer's own cadence."""

    def test_single_visit_forty_days_ago_is_medium(self):
        assert classify_churn_risk(40, 20) is ChurnRisk.MEDIUM

    def test_just_past_double_interval_is_high(self):
        assert classify_churn_risk(41, 20) is ChurnRisk.HIGH

    def test_floors_apply_to_frequent_customers(self):
        assert classify_churn_risk(15, 5) is ChurnRisk.LOW
        assert classify_churn_risk(16, 5) is ChurnRisk.MEDIUM
        assert classify_churn_risk(31, 5) is ChurnRisk.HIGH

    def test_example_single_visit_customer(self):
        sales = [
            _sale("1", datetime(2024, 1, 1, 10), "Ana"),
            _sale("2", datetime(2024, 2, 10, 10), "Bruno"),
        ]
        profile = get_profile("Ana", sales)
        assert profile.recency_days == 40
        assert profile.average_interval_days == 20.0
        assert profile.churn_risk is ChurnRisk.MEDIUM
        assert profile.next_predicted_visit == datetime(2024, 1, 21, 10)


class TestCustomerProfile:
    def test_example_visits_and_cycles(self):
        sales = [
            _sale("1", datetime(2024, 1, 1, 10), "Ana", 20, "Lavagem"),
            _sale("2", datetime(2024, 1, 1, 10, 30), "Ana", 15, "Secagem"),
            _sale("3", datetime(2024, 1, 10, 9), "Ana", 20, "Lavagem"),
        ]
        profile = calculate_crm_metrics(sales).profiles[0]
        assert profile.name == "ANA"
        assert (profile.total_visits, profile.total_washes, profile.total_dries) == (2, 2, 1)
        assert profile.total_spent == Decimal("55.00")
        assert profile.average_ticket == Decimal("27.50")
        assert profile.avg_baskets_per_visit == Decimal("1.50")
        assert [v.date for v in profile.last_visits] == [
            datetime(2024, 1, 10, 9),
            datetime(2024, 1, 1, 10),
        ]
        assert profile.last_visits[1].total == Decimal("35.00")

    def test_spend_windows_are_strict(self, history):
        profile = get_profile("ANA", history)
        # a2 sits exactly 30 days and a1 exactly 90 days before the latest sale
        assert profile.spent_30d == Decimal("16.00")
        assert profile.spent_90d == Decimal("31.00")
        assert profile.spent_180d == Decimal("45.00")
        assert profile.baskets_180d == 3

    def test_interval_and_recency(self, history):
        profile = get_profile("ana", history)
        assert profile.total_visits == 3
        assert profile.recency_days == 0
        assert profile.average_interval_days == 45.0
        assert profile.churn_risk is ChurnRisk.LOW

    def test_preferences(self, history):
        profile = get_profile("ANA", history)
        # one sale per weekday: the earliest one wins the tie
        assert profile.top_day == "Monday"
        assert profile.top_shift == "afternoon"
        assert profile.preferred_store == "Centro"
        assert profile.top_slots[0].count == 1

    def test_phone_uses_latest_usable_number(self):
        sales = [
            _sale("1", datetime(2024, 1, 1, 10), "Ana", phone="11988887777"),
            _sale("2", datetime(2024, 1, 2, 10), "Ana", phone="123"),
        ]
        assert get_profile("Ana", sales).phone == "11988887777"

    def test_unknown_customer_is_none(self, history):
        assert get_profile("Nobody", history) is None
        assert get_profile("Ana", []) is None

    def test_get_profile_matches_summary_entry(self, history):
        summary = calculate_crm_metrics(history)
        entry = next(p for p in summary.profiles if p.name == "DAVI")
        assert get_profile("Davi", history) == entry

    def test_inconsistent_cycles_raise_error(self, history):
        profile = get_profile("Ana", history)
        with pytest.raises(ValueError, match="exceeds total cycles"):
            type(profile)(**{**profile.__dict__, "total_cycles": 0})


class TestRegistryEnrichment:
    def test_registry_id_merges_spellings(self):
        registry = [
            CustomerRecord(
                name="Ana Souza",
                customer_id="7",
                phone="11999990000",
                gender="F",
                registration_date=datetime(2023, 1, 1),
            )
        ]
        sales = [
            _sale("1", datetime(2024, 1, 1, 10), "Ana S.", customer_id="7"),
            _sale("2", datetime(2024, 1, 5, 10), "ana souza", customer_id="7"),
        ]
        summary = calculate_crm_metrics(sales, registry=registry)

        assert summary.total_customers == 1
        profile = summary.profiles[0]
        assert profile.name == "ANA SOUZA"
        assert profile.total_visits == 2
        assert profile.phone == "11999990000"
        assert profile.gender == "F"
        assert profile.first_visit_date == datetime(2023, 1, 1)

    def test_registry_name_lookup(self):
        registry = [CustomerRecord(name="Bruno Dias", email="bruno@example.com")]
        sales = [_sale("1", datetime(2024, 1, 1, 10), "BRUNO DIAS")]
        profile = calculate_crm_metrics(sales, registry=registry).profiles[0]
        assert profile.email == "bruno@example.com"

    def test_short_registry_names_are_ignored(self):
        resolver = CustomerIdentityResolver([CustomerRecord(name="Al", customer_id="1")])
        assert resolver.by_name == {}
        sale = _sale("1", datetime(2024, 1, 1), "Alberto", customer_id="1")
        assert resolver.key_for(sale) == "ALBERTO"

    def test_excluded_customers_have_no_key(self):
        resolver = CustomerIdentityResolver()
        assert resolver.key_for(_sale("1", TODAY, "Consumidor Final")) is None
        assert resolver.key_for(_sale("2", TODAY, "Admin")) is None


class TestCrmSummary:
    """Global aggregates over the profile set."""

    def test_activity_tiers_are_disjoint(self, history):
        stats = calculate_crm_metrics(history).customer_stats
        assert (stats.active_30d, stats.inactive_30_60d, stats.inactive_60_90d, stats.inactive_90d) == (
            2,
            1,
            1,
            1,
        )
        assert (
            stats.active_30d + stats.inactive_30_60d + stats.inactive_60_90d + stats.inactive_90d
            == 5
        )

    def test_rates_and_counts(self, history):
        summary = calculate_crm_metrics(history)
        stats = summary.customer_stats
        assert summary.reference_date == TODAY
        assert summary.total_customers == 5
        assert summary.active_customers == 2
        assert stats.new_customers == 1
        assert stats.recurring == 1
        assert stats.retention_rate == Decimal("20.00")
        assert summary.churn_rate == Decimal("20.00")
        assert stats.churn_risk_counts == {"low": 2, "medium": 0, "high": 3}

    def test_wash_dry_conversion(self, history):
        wash_dry = calculate_crm_metrics(history).wash_dry
        assert (wash_dry.wash_count, wash_dry.dry_count) == (6, 1)
        assert wash_dry.total_baskets == 7
        assert wash_dry.conversion_rate == Decimal("16.67")

    def test_profiles_sorted_by_spend_then_name(self, history):
        names = [p.name for p in calculate_crm_metrics(history).profiles]
        assert names == ["ANA", "BRUNO", "CARLA", "DAVI", "EVA"]

    def test_excluded_and_invalid_sales_are_ignored(self, history):
        extra = [
            _sale("x1", TODAY, "Consumidor Final"),
            _sale("x2", TODAY, "Teste Loja"),
            Sale("x3", None, "Centro", "Fábio", 18),
        ]
        assert calculate_crm_metrics(history + extra).total_customers == 5

    def test_diagnostics_report_unclassified_cycles(self):
        sales = [
            _sale("1", TODAY, "Ana", 40, "Sabão"),
            _sale("2", TODAY, "Bruno", 18, "", items=[CycleItem("X", "Cartão", item_id="P1")]),
            _sale("3", TODAY, "Bruno", 18, "Lavagem"),
        ]
        summary = calculate_crm_metrics(sales)
        assert summary.unclassified_count == 2
        assert {d.machine for d in summary.diagnostics} == {"", "X"}

    def test_diagnostics_limit(self):
        sales = [_sale(str(i), TODAY, "Ana", 40, "Sabão") for i in range(5)]
        builder = CrmProfileBuilder(config=EngineConfig(diagnostics_limit=2))
        summary = builder.build(sales)
        assert summary.unclassified_count == 5
        assert len(summary.diagnostics) == 2

    def test_empty_input(self):
        summary = calculate_crm_metrics([])
        assert summary.profiles == []
        assert summary.total_customers == 0
        assert summary.reference_date is None
        assert summary.global_average_ticket == Decimal("0.00")

    def test_results_are_deterministic(self, history):
        assert calculate_crm_metrics(history).as_dict() == calculate_crm_metrics(
            list(reversed(history))
        ).as_dict()


def test_last_visits_limit_zero():
    sales = [_sale(str(i), TODAY - timedelta(days=i), "Ana") for i in range(3)]
    profile = CrmProfileBuilder(config=EngineConfig(last_visits_limit=0)).build(sales).profiles[0]
    assert profile.last_visits == ()


def test_mixed_offset_and_naive_timestamps_build_one_profile():
    sales = sales_from_mappings(
        [
            {"timestamp": "2024-05-01T10:00:00", "customer": "Ana", "value": 18, "product": "Lavagem"},
            {"timestamp": "2024-05-02T10:00:00Z", "customer": "Ana", "value": 18, "product": "Lavagem"},
        ]
    )
    summary = calculate_crm_metrics(sales)
    assert summary.reference_date == datetime(2024, 5, 2, 10)
    assert summary.profiles[0].total_visits == 2
