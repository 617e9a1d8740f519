"""Tests for the pandas DataFrame adapters."""

from datetime import date, datetime
from decimal import Decimal

import pandas as pd
import pytest

from laundry_crm.analyses import calculate_crm_metrics, calculate_period_stats
from laundry_crm.foundation.records import Sale
from laundry_crm.pandas import (
    orders_from_dataframe,
    profiles_to_dataframe,
    reconciliation_to_dataframe,
    sales_from_dataframe,
    segments_to_dataframe,
    summary_to_dataframe,
)
from laundry_crm.pandas.profiles import PROFILE_COLUMNS
from laundry_crm.pandas.records import RECONCILIATION_COLUMNS
from laundry_crm.pandas.segments import SEGMENT_COLUMNS
from laundry_crm.reconciliation import reconcile_orders


@pytest.fixture
def sales_df():
    return pd.DataFrame(
        {
            "timestamp": pd.to_datetime(
                ["2024-05-01 10:00", "2024-05-01 10:30", None, "2024-05-02 09:00"]
            ),
            "store": ["Centro", "Centro", "Centro", "Centro"],
            "customer": ["Ana", "Ana", "Bruno", "Bruno"],
            "value": [18.0, 16.0, 18.0, float("nan")],
            "product": ["Lavagem", "Secagem", "Lavagem", "Lavagem"],
        }
    )


class TestSalesFromDataFrame:
    """Test sales_from_dataframe conversion."""

    def test_rows_without_timestamp_or_value_are_skipped(self, sales_df):
        sales = sales_from_dataframe(sales_df)

        assert len(sales) == 2
        assert sales[0].timestamp == datetime(2024, 5, 1, 10)
        assert sales[0].value == Decimal("18.0")  # via str, no float noise
        assert sales[1].product == "Secagem"

    def test_sale_id_is_derived_when_missing(self, sales_df):
        sale = sales_from_dataframe(sales_df)[0]
        assert sale.sale_id == "Centro_2024-05-01T10:00:00_Ana_18.0"

    def test_custom_column_names(self):
        df = pd.DataFrame(
            {
                "data": [pd.Timestamp("2024-05-01 10:00")],
                "loja": ["Centro"],
                "cliente": ["Ana"],
                "valor": [18.0],
            }
        )
        sales = sales_from_dataframe(
            df, timestamp_col="data", store_col="loja", customer_col="cliente", value_col="valor"
        )
        assert sales[0].customer == "Ana"
        assert sales[0].product == ""

    def test_missing_columns_raise_error(self):
        with pytest.raises(ValueError, match="missing required columns"):
            sales_from_dataframe(pd.DataFrame({"timestamp": []}))

    def test_empty_dataframe(self):
        df = pd.DataFrame(columns=["timestamp", "store", "customer", "value"])
        assert sales_from_dataframe(df) == []


class TestOrdersFromDataFrame:
    def test_orders_keep_missing_timestamps_and_default_placeholders(self):
        df = pd.DataFrame(
            {
                "timestamp": pd.to_datetime(["2024-05-01 14:00", None]),
                "machine": ["M3", "007"],
                "value": [18.0, 20.0],
                "order_id": ["P1", None],
            }
        )
        orders = orders_from_dataframe(df)

        assert len(orders) == 2
        assert orders[0].order_id == "P1"
        assert orders[1].timestamp is None
        assert orders[1].order_id is None
        assert orders[1].service == "Unknown"

    def test_demographic_columns_reach_the_sale(self):
        df = pd.DataFrame(
            {
                "timestamp": pd.to_datetime(["2024-05-01 10:05", "2024-05-01 18:00"]),
                "machine": ["L1", "L2"],
                "value": [18.0, 18.0],
                "order_id": ["P1", "P2"],
                "customer_id": ["C7", None],
                "birth_date": pd.to_datetime(["1990-02-03", None]),
                "age": [34, None],
            }
        )
        orders = orders_from_dataframe(df)
        assert (orders[0].customer_id, orders[0].birth_date, orders[0].age) == (
            "C7",
            date(1990, 2, 3),
            34,
        )
        assert (orders[1].customer_id, orders[1].birth_date, orders[1].age) == (None, None, None)

        sale = Sale("S1", datetime(2024, 5, 1, 10), "Centro", "", 18)
        assert reconcile_orders([sale], orders[:1]).demographics_merged == 1
        assert (sale.birth_date, sale.age) == (date(1990, 2, 3), 34)

    def test_offset_timestamps_become_naive(self):
        df = pd.DataFrame(
            {
                "timestamp": pd.to_datetime(["2024-05-01 10:00"]).tz_localize("UTC"),
                "machine": ["L1"],
                "value": [18.0],
            }
        )
        assert orders_from_dataframe(df)[0].timestamp == datetime(2024, 5, 1, 10)

    def test_missing_columns_raise_error(self):
        with pytest.raises(ValueError, match="missing required columns"):
            orders_from_dataframe(pd.DataFrame({"machine": []}))


class TestReconciliationToDataFrame:
    def test_one_row_per_item(self, sales_df):
        sales = sales_from_dataframe(sales_df)
        orders = orders_from_dataframe(
            pd.DataFrame(
                {
                    "timestamp": pd.to_datetime(["2024-05-01 10:05"]),
                    "machine": ["L1"],
                    "value": [18.0],
                    "order_id": ["P1"],
                    "customer": ["Ana"],
                }
            )
        )
        reconcile_orders(sales, orders)
        df = reconciliation_to_dataframe(sales)

        assert list(df.columns) == RECONCILIATION_COLUMNS
        assert len(df) == 1
        assert df.iloc[0]["item_id"] == "P1"
        assert df.iloc[0]["item_value"] == 18.0

    def test_no_items_gives_empty_frame(self):
        sale = Sale("S1", datetime(2024, 5, 1), "Centro", "Ana", 18)
        df = reconciliation_to_dataframe([sale])
        assert df.empty
        assert list(df.columns) == RECONCILIATION_COLUMNS


class TestProfileFrames:
    def test_profiles_to_dataframe(self, sales_df):
        summary = calculate_crm_metrics(sales_from_dataframe(sales_df))
        df = profiles_to_dataframe(summary.profiles)

        assert list(df.columns) == PROFILE_COLUMNS
        assert df.iloc[0]["name"] == "ANA"
        assert df.iloc[0]["total_spent"] == 34.0  # Decimal converted to float
        assert df.iloc[0]["churn_risk"] == "low"

    def test_empty_profiles(self):
        df = profiles_to_dataframe([])
        assert df.empty
        assert list(df.columns) == PROFILE_COLUMNS

    def test_summary_is_single_row(self, sales_df):
        summary = calculate_crm_metrics(sales_from_dataframe(sales_df))
        df = summary_to_dataframe(summary)
        assert len(df) == 1
        assert df.iloc[0]["total_customers"] == 1
        assert df.iloc[0]["wash_count"] == 1
        assert df.iloc[0]["dry_count"] == 1


class TestSegmentFrames:
    def test_segments_to_dataframe(self, sales_df):
        sales = sales_from_dataframe(sales_df)
        df = segments_to_dataframe(calculate_period_stats(sales, sales))

        assert list(df.columns) == SEGMENT_COLUMNS
        assert df.iloc[0]["segment"] == "wash_and_dry"
        assert bool(df.iloc[0]["balanced"])

    def test_empty_stats(self):
        df = segments_to_dataframe(calculate_period_stats([], []))
        assert df.empty
        assert list(df.columns) == SEGMENT_COLUMNS
