"""Tests for cycle classification and implied basket estimation."""

from datetime import datetime
from decimal import Decimal

import pytest

from laundry_crm.foundation.config import EngineConfig
from laundry_crm.foundation.cycles import (
    BasketEstimator,
    CycleClassifier,
    CycleCounts,
    CyclePriceReference,
    CycleType,
    KeywordRule,
    ParityRule,
    UNCLASSIFIED,
)
from laundry_crm.foundation.records import CycleItem, Sale


def _sale(value, product="", store="Centro", items=None, minute=0):
    return Sale(
        sale_id=f"S{value}-{minute}",
        timestamp=datetime(2024, 1, 1, 10, minute),
        store=store,
        customer="Ana",
        value=value,
        product=product,
        items=list(items or []),
    )


class TestParityRule:
    """Numbered-machine stores: even washes, odd dries."""

    def test_even_machine_is_wash(self):
        rule = ParityRule()
        assert rule("", "Máquina 12", "Lavateria Sul") == CycleType(True, False)

    def test_odd_machine_is_dry(self):
        assert ParityRule()("Lavagem", "07", "LAVATERIA") == CycleType(False, True)

    def test_other_stores_have_no_opinion(self):
        assert ParityRule()("", "Máquina 12", "Centro") is None

    def test_machine_without_number_has_no_opinion(self):
        assert ParityRule()("", "Secadora", "Lavateria Sul") is None


class TestKeywordRule:
    @pytest.mark.parametrize(
        "service,machine,expected",
        [
            ("Lavagem", "", CycleType(True, False)),
            ("Ciclo 30 min", "", CycleType(True, False)),
            ("Secagem", "", CycleType(False, True)),
            ("Ciclo 45min", "", CycleType(False, True)),
            ("", "L3", CycleType(True, False)),
            ("", "s2", CycleType(False, True)),
            ("Lava e seca", "", CycleType(True, True)),
        ],
    )
    def test_keywords(self, service, machine, expected):
        assert KeywordRule()(service, machine, "Centro") == expected

    def test_no_keyword_has_no_opinion(self):
        assert KeywordRule()("Detergente", "Balcão", "Centro") is None


class TestCycleClassifier:
    def test_first_rule_with_opinion_wins(self):
        # Parity overrides the service label in numbered stores
        classifier = CycleClassifier()
        assert classifier.classify("Lavagem", "Máquina 3", "Lavateria") == CycleType(
            False, True
        )

    def test_unclassified_fallback(self):
        assert CycleClassifier().classify("Sabão", "", "Centro") == UNCLASSIFIED
        assert not UNCLASSIFIED.classified

    def test_custom_store_markers_from_config(self):
        config = EngineConfig(parity_store_markers=("AUTOSERVICO",))
        classifier = CycleClassifier.from_config(config)
        assert classifier.classify("", "4", "Autoservico Norte").is_wash
        assert classifier.classify("", "4", "Lavateria") == UNCLASSIFIED


class TestCycleCounts:
    def test_negative_counts_raise_error(self):
        with pytest.raises(ValueError, match="Cycle counts cannot be negative"):
            CycleCounts(wash=-1)

    def test_addition(self):
        total = CycleCounts(1, 0) + CycleCounts(0, 2, approximate=True)
        assert (total.wash, total.dry, total.total) == (1, 2, 3)
        assert total.approximate


class TestCyclePriceReference:
    """Reference unit prices from plausible single-cycle sales."""

    def test_default_price_without_candidates(self):
        prices = CyclePriceReference.from_sales([_sale(100)])
        assert prices.global_price == Decimal("18.00")
        assert prices.unit_price("Centro") == Decimal("18.00")

    def test_tenth_percentile_and_store_minimum(self):
        sales = [_sale(v, minute=i) for i, v in enumerate([10, 12, 14, 16, 18, 20, 22, 24, 25, 25, 9])]
        prices = CyclePriceReference.from_sales(sales)
        # 11 candidates sorted, index floor(11 * 0.1) = 1
        assert prices.global_price == Decimal("10")
        assert prices.store_prices["CENTRO"] == Decimal("9")
        assert prices.unit_price("centro") == Decimal("9")
        assert prices.unit_price("Unknown Store") == Decimal("10")

    def test_unit_price_is_never_zero(self):
        prices = CyclePriceReference(
            global_price=Decimal("0"), store_prices={}, default_price=Decimal("0")
        )
        assert prices.unit_price("x") > 0


class TestBasketEstimator:
    """Per-sale wash/dry counts."""

    @pytest.fixture
    def estimator(self):
        prices = CyclePriceReference(global_price=Decimal("18"), store_prices={})
        return BasketEstimator(prices)

    def test_items_counted_one_by_one(self, estimator):
        sale = _sale(
            54,
            items=[
                CycleItem("L1", "Lavagem"),
                CycleItem("L2", "Lavagem"),
                CycleItem("S1", "Secagem"),
                CycleItem("?", "Cartão"),
            ],
        )
        counts = estimator.count_sale(sale)
        assert (counts.wash, counts.dry, counts.unclassified_items) == (2, 1, 1)
        assert not counts.approximate

    def test_single_classified_product(self, estimator):
        counts = estimator.count_sale(_sale(18, product="Lavagem"))
        assert (counts.wash, counts.dry) == (1, 0)

    def test_multi_basket_scaling(self, estimator):
        # 54 > 18 * 1.5 and round(54 / 18) = 3
        counts = estimator.count_sale(_sale(54, product="Secagem"))
        assert (counts.wash, counts.dry) == (0, 3)

    def test_below_multiplier_threshold_is_single(self, estimator):
        counts = estimator.count_sale(_sale(27, product="Lavagem"))
        assert (counts.wash, counts.dry) == (1, 0)

    def test_unclassified_even_split_is_approximate(self, estimator):
        counts = estimator.count_sale(_sale(54, product="Pacote"))
        assert (counts.wash, counts.dry) == (2, 1)
        assert counts.approximate

    def test_split_can_be_disabled(self, estimator):
        counts = estimator.count_sale(_sale(54, product="Pacote"), allow_approximate=False)
        assert counts.total == 0

    def test_negative_value_never_gives_negative_counts(self, estimator):
        counts = estimator.count_sale(_sale(-40, product="Estorno"))
        assert counts.total == 0

    def test_invalid_sale_counts_nothing(self, estimator):
        assert estimator.count_sale(_sale(None, product="Lavagem")).total == 0
