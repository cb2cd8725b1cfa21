"""Utility helpers shared across the evaluation engine."""

from .shared import compute_checksum, ensure_root_logging, qualified_name

__all__ = ["compute_checksum", "ensure_root_logging", "qualified_name"]
