"""Command line entry points for the laundromat CRM toolkit."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from laundry_crm.analyses.profiles import calculate_crm_metrics
from laundry_crm.analyses.segmentation import calculate_period_stats, filter_period
from laundry_crm.foundation.config import DEFAULT_CONFIG, EngineConfig
from laundry_crm.foundation.records import (
    customers_from_mappings,
    orders_from_mappings,
    sales_from_mappings,
)
from laundry_crm.pandas import profiles_to_dataframe, segments_to_dataframe
from laundry_crm.reconciliation.merge import merge_orders
from laundry_crm.reconciliation.reconciler import reconcile_orders

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap to avoid accidental OOM


def _load_json(path: Path) -> Any:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _load_records(path: Path, kind: str) -> list[dict[str, Any]]:
    payload = _load_json(path)
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of {kind} in {path}")
    return payload


def _load_config(path: Path | None) -> EngineConfig:
    if path is None:
        return DEFAULT_CONFIG
    payload = _load_json(path)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object in config file {path}")
    return EngineConfig.from_mapping(payload)


def _resolve_output(path: Path) -> Path:
    output_path = path.resolve()
    cwd = Path.cwd().resolve()
    try:
        output_path.relative_to(cwd)
    except ValueError:
        raise ValueError(
            f"Output path {output_path} must reside within the current working directory"
        )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path


def _emit(payload: dict[str, Any], output: Path | None) -> None:
    if output:
        with _resolve_output(output).open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, sort_keys=True)
    else:  # stdout fallback enables piping in shell usage.
        json.dump(payload, fp=sys.stdout, indent=2, sort_keys=True)
        print()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional JSON file overriding engine settings (windows, tolerances, prices).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path for writing the result; defaults to stdout.",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging."
    )


def _parse_date(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid ISO date: {value}") from exc


def profiles_cli(argv: list[str] | None = None) -> int:
    """Build customer profiles and the CRM summary from a sales JSON file.

    When ``--orders`` is given, machine orders are first attached to the
    sales so that cycles are counted from real machine data.
    """
    parser = argparse.ArgumentParser(
        description="Build customer profiles and the CRM summary"
    )
    parser.add_argument("input", type=Path, help="Path to JSON file with sales")
    parser.add_argument(
        "--orders", type=Path, help="Optional JSON file with machine orders."
    )
    parser.add_argument(
        "--registry", type=Path, help="Optional JSON file with the customer registry."
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Write one CSV row per profile instead of the JSON summary.",
    )
    _common_arguments(parser)
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    config = _load_config(args.config)
    sales = sales_from_mappings(_load_records(args.input, "sales"))
    if not sales:
        logger.error("No valid sales found in input file")
        return 1

    if args.orders:
        orders = orders_from_mappings(_load_records(args.orders, "orders"))
        result = reconcile_orders(sales, orders, config)
        logger.info(f"Attached {result.enriched} of {result.total} orders to sales")

    registry = (
        customers_from_mappings(_load_records(args.registry, "customers"))
        if args.registry
        else None
    )
    summary = calculate_crm_metrics(sales, registry, config)

    if args.csv:
        frame = profiles_to_dataframe(summary.profiles)
        if args.output:
            frame.to_csv(_resolve_output(args.output), index=False)
        else:
            frame.to_csv(sys.stdout, index=False)
    else:
        _emit(summary.as_dict(), args.output)

    logger.info(
        f"Profiled {summary.total_customers} customers, "
        f"{summary.customer_stats.churn_risk_counts['high']} at high churn risk"
    )
    return 0


def segments_cli(argv: list[str] | None = None) -> int:
    """Segment the customers active in a period into wash/dry groups."""
    parser = argparse.ArgumentParser(
        description="Segment customers active in a period by wash/dry behaviour"
    )
    parser.add_argument("input", type=Path, help="Path to JSON file with sales")
    parser.add_argument(
        "--start", type=_parse_date, required=True, help="Period start (inclusive)."
    )
    parser.add_argument(
        "--end", type=_parse_date, required=True, help="Period end (exclusive)."
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Write one CSV row per customer instead of JSON.",
    )
    _common_arguments(parser)
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.start >= args.end:
        logger.error("--start must be before --end")
        return 1

    config = _load_config(args.config)
    sales = sales_from_mappings(_load_records(args.input, "sales"))
    stats = calculate_period_stats(
        filter_period(sales, args.start, args.end), sales, config
    )

    if args.csv:
        frame = segments_to_dataframe(stats)
        if args.output:
            frame.to_csv(_resolve_output(args.output), index=False)
        else:
            frame.to_csv(sys.stdout, index=False)
    else:
        _emit(stats.as_dict(), args.output)
    return 0


def merge_cli(argv: list[str] | None = None) -> int:
    """Merge a new batch of orders into an existing order file."""
    parser = argparse.ArgumentParser(
        description="Merge a batch of machine orders without creating duplicates"
    )
    parser.add_argument("existing", type=Path, help="JSON file with existing orders")
    parser.add_argument("incoming", type=Path, help="JSON file with the new batch")
    _common_arguments(parser)
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    config = _load_config(args.config)
    existing = orders_from_mappings(_load_records(args.existing, "orders"))
    incoming = orders_from_mappings(_load_records(args.incoming, "orders"))
    result = merge_orders(existing, incoming, config)
    _emit(result.as_dict(), args.output)
    return 0


def reconcile_cli(argv: list[str] | None = None) -> int:
    """Attach machine orders to the sales they belong to."""
    parser = argparse.ArgumentParser(
        description="Attach machine orders to point-of-sale transactions"
    )
    parser.add_argument("sales", type=Path, help="JSON file with sales")
    parser.add_argument("orders", type=Path, help="JSON file with machine orders")
    _common_arguments(parser)
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    config = _load_config(args.config)
    sales = sales_from_mappings(_load_records(args.sales, "sales"))
    orders = orders_from_mappings(_load_records(args.orders, "orders"))
    if not sales:
        logger.error("No valid sales found in input file")
        return 1

    result = reconcile_orders(
        sales,
        orders,
        config,
        progress=lambda done, total: logger.debug(f"Processed {done}/{total} orders"),
    )
    _emit(
        {"result": result.as_dict(), "sales": [sale.as_dict() for sale in sales]},
        args.output,
    )
    return 0


def main() -> None:
    raise SystemExit(profiles_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
