"""File sinks that stream result rows to CSV or Parquet outputs."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

import polars as pl
import pyarrow as pa
import pyarrow.csv as pacsv

from traintest_eval.errors import OutputError
from traintest_eval.output.frames import rows_to_frame

logger = logging.getLogger(__name__)


@runtime_checkable
class TableSink(Protocol):
    """External destination for result rows."""

    def write_row(self, row: Mapping[str, Any]) -> None: ...

    def close(self) -> None: ...


def _format_cell(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


class CsvTableSink:
    """Stream rows to a CSV file, compressed according to the file suffix."""

    def __init__(self, path: Path | str, columns: Sequence[str]) -> None:
        self.path = Path(path)
        self.columns = tuple(columns)
        self._schema = pa.schema([(column, pa.string()) for column in self.columns])
        self._closed = False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._stream = pa.output_stream(str(self.path), compression="detect")
        try:
            self._writer = pacsv.CSVWriter(self._stream, self._schema)
        except Exception:
            self._stream.close()
            raise

    def write_row(self, row: Mapping[str, Any]) -> None:
        record = {column: _format_cell(row.get(column)) for column in self.columns}
        self._writer.write_table(pa.Table.from_pylist([record], schema=self._schema))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
        finally:
            self._stream.close()

    def __repr__(self) -> str:
        return f"CsvTableSink({str(self.path)!r})"


class ParquetTableSink:
    """Buffer rows and write them to a Parquet file when closed."""

    def __init__(self, path: Path | str, columns: Sequence[str]) -> None:
        self.path = Path(path)
        self.columns = tuple(columns)
        self._rows: list[dict[str, Any]] = []
        self._closed = False
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write_row(self, row: Mapping[str, Any]) -> None:
        self._rows.append({column: row.get(column) for column in self.columns})

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        frame = rows_to_frame(self.columns, self._rows)
        _write_parquet_atomic(frame, self.path)
        logger.debug("Wrote %d row(s) to %s.", len(self._rows), self.path)
        self._rows.clear()

    def __repr__(self) -> str:
        return f"ParquetTableSink({str(self.path)!r})"


def open_table_sink(path: Path | str, columns: Sequence[str]) -> TableSink:
    """Open the sink matching ``path``'s suffix (``.parquet`` or CSV)."""
    resolved = Path(path).expanduser()
    suffixes = [suffix.lower() for suffix in resolved.suffixes]
    try:
        if ".parquet" in suffixes:
            sink: TableSink = ParquetTableSink(resolved, columns)
        else:
            sink = CsvTableSink(resolved, columns)
    except (OSError, pa.ArrowException) as exc:
        raise OutputError(f"Failed to open output file {resolved}") from exc
    logger.info("Writing results to %s.", resolved)
    return sink


def _write_parquet_atomic(frame: pl.DataFrame, path: Path) -> None:
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        frame.write_parquet(tmp_path)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


__all__ = ["CsvTableSink", "ParquetTableSink", "TableSink", "open_table_sink"]
