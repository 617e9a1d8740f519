"""Pandas DataFrame adapters for sales and machine orders."""

from typing import List, Sequence

import pandas as pd  # type: ignore

from laundry_crm.foundation.records import Order, Sale
from ._utils import (
    cell_to_datetime,
    cell_to_decimal,
    cell_to_int,
    cell_to_str,
    decimal_to_float,
)

RECONCILIATION_COLUMNS = [
    "sale_id",
    "timestamp",
    "store",
    "customer",
    "value",
    "item_id",
    "machine",
    "service",
    "status",
    "item_start_time",
    "item_value",
]


def _check_columns(df: pd.DataFrame, required: Sequence[str]) -> None:
    missing_cols = set(required) - set(df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")


def _optional(record: dict, column: str) -> str:
    return cell_to_str(record.get(column))


def sales_from_dataframe(
    sales_df: pd.DataFrame,
    timestamp_col: str = "timestamp",
    store_col: str = "store",
    customer_col: str = "customer",
    value_col: str = "value",
    product_col: str = "product",
    sale_id_col: str = "sale_id",
) -> List[Sale]:
    """Convert a DataFrame of point-of-sale rows to Sale records.

    Rows without a timestamp or value are skipped. ``product``, ``phone``,
    ``customer_id`` and ``sale_id`` columns are optional; a missing sale id is
    derived from store, timestamp, customer and value.

    Args:
        sales_df: DataFrame with one row per sale
        *_col: Column name mappings for flexibility

    Returns:
        List of Sale objects without attached items

    Raises:
        ValueError: If DataFrame is missing a required column

    Example:
        >>> sales = sales_from_dataframe(pd.read_csv("sales.csv", parse_dates=["timestamp"]))
        >>> summary = calculate_crm_metrics(sales)
    """
    _check_columns(sales_df, [timestamp_col, store_col, customer_col, value_col])
    if sales_df.empty:
        return []

    sales = []
    for record in sales_df.to_dict("records"):
        timestamp = cell_to_datetime(record[timestamp_col])
        value = cell_to_decimal(record[value_col])
        if timestamp is None or value is None:
            continue
        store = cell_to_str(record[store_col])
        customer = cell_to_str(record[customer_col])
        sale_id = _optional(record, sale_id_col) or (
            f"{store}_{timestamp.isoformat()}_{customer}_{value}"
        )
        sales.append(
            Sale(
                sale_id=sale_id,
                timestamp=timestamp,
                store=store,
                customer=customer,
                value=value,
                product=_optional(record, product_col),
                phone=_optional(record, "phone"),
                customer_id=_optional(record, "customer_id") or None,
            )
        )
    return sales


def orders_from_dataframe(
    orders_df: pd.DataFrame,
    timestamp_col: str = "timestamp",
    machine_col: str = "machine",
    value_col: str = "value",
) -> List[Order]:
    """Convert a DataFrame of machine orders to Order records.

    Orders are kept even without a timestamp; the reconciler and the merge
    engine count them as skipped. ``order_id``, ``store``, ``customer``,
    ``service``, ``status``, ``customer_id``, ``birth_date`` and ``age``
    columns are optional. The demographics are copied onto the sale an order
    is reconciled with.

    Raises:
        ValueError: If DataFrame is missing a required column
    """
    _check_columns(orders_df, [timestamp_col, machine_col, value_col])
    if orders_df.empty:
        return []

    orders = []
    for record in orders_df.to_dict("records"):
        birth = cell_to_datetime(record.get("birth_date"))
        orders.append(
            Order(
                order_id=_optional(record, "order_id") or None,
                timestamp=cell_to_datetime(record[timestamp_col]),
                store=_optional(record, "store"),
                customer=_optional(record, "customer"),
                machine=cell_to_str(record[machine_col]),
                service=_optional(record, "service") or "Unknown",
                status=_optional(record, "status") or "Unknown",
                value=cell_to_decimal(record[value_col]),
                customer_id=_optional(record, "customer_id") or None,
                birth_date=birth.date() if birth is not None else None,
                age=cell_to_int(record.get("age")),
            )
        )
    return orders


def reconciliation_to_dataframe(sales: Sequence[Sale]) -> pd.DataFrame:
    """One row per attached cycle item, with the owning sale's columns.

    Sales without items are omitted; use this after reconcile_orders to audit
    which orders landed on which sale.
    """
    rows = [
        {
            "sale_id": sale.sale_id,
            "timestamp": sale.timestamp,
            "store": sale.store,
            "customer": sale.customer,
            "value": decimal_to_float(sale.value),
            "item_id": item.item_id,
            "machine": item.machine,
            "service": item.service,
            "status": item.status,
            "item_start_time": item.start_time,
            "item_value": decimal_to_float(item.value),
        }
        for sale in sales
        for item in sale.items
    ]
    return pd.DataFrame(rows, columns=RECONCILIATION_COLUMNS)
