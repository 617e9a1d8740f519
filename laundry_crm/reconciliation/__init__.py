"""Linking records from sources that share no identifier."""

from .merge import MergeResult, fill_missing, machine_key, merge_orders
from .reconciler import OrderReconciler, ReconciliationResult, reconcile_orders

__all__ = [
    "MergeResult",
    "fill_missing",
    "machine_key",
    "merge_orders",
    "OrderReconciler",
    "ReconciliationResult",
    "reconcile_orders",
]
