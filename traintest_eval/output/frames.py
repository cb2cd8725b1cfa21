"""Conversion of buffered result rows into polars frames."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import polars as pl


def rows_to_frame(columns: Sequence[str], rows: Sequence[Mapping[str, Any]]) -> pl.DataFrame:
    """Build a frame with exactly ``columns``, in order, from row mappings."""
    if not rows:
        return pl.DataFrame(schema={column: pl.Null for column in columns})
    data = {column: [row.get(column) for row in rows] for column in columns}
    return pl.DataFrame(data, strict=False)


__all__ = ["rows_to_frame"]
