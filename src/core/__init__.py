"""Core orchestration for Dealflow."""

from .pipeline import IngestPipeline, filters_from_config
from .reconciler import Reconciler, assign_tier, detect_primary_trade, merge_only_null

__all__ = [
    "IngestPipeline",
    "filters_from_config",
    "Reconciler",
    "assign_tier",
    "detect_primary_trade",
    "merge_only_null",
]
