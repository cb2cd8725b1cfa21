"""In-memory result accumulation with fan-out to external sinks."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Sequence

import polars as pl

from traintest_eval.errors import OutputError, RowLayoutError
from traintest_eval.output.frames import rows_to_frame
from traintest_eval.output.sinks import TableSink

logger = logging.getLogger(__name__)


class ResultTable:
    """Thread-safe table of result rows.

    Every row is validated against the column layout, forwarded to each attached sink
    and only then buffered. Attached sinks are owned by the table and released by
    :meth:`close`.
    """

    def __init__(self, columns: Sequence[str], *, name: str = "results") -> None:
        self.name = name
        self._columns = tuple(columns)
        self._column_set = frozenset(self._columns)
        self._rows: list[dict[str, Any]] = []
        self._sinks: list[TableSink] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def rows(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self._rows]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def attach(self, sink: TableSink) -> TableSink:
        with self._lock:
            if self._closed:
                raise OutputError(f"Cannot attach a sink to closed table '{self.name}'.")
            self._sinks.append(sink)
        return sink

    def write(self, row: Mapping[str, Any]) -> None:
        unknown = [key for key in row if key not in self._column_set]
        if unknown:
            raise RowLayoutError(f"Row has columns outside the '{self.name}' layout: {', '.join(map(str, unknown))}")
        record = {column: row.get(column) for column in self._columns}
        with self._lock:
            if self._closed:
                raise OutputError(f"Cannot write to closed table '{self.name}'.")
            for sink in self._sinks:
                try:
                    sink.write_row(record)
                except Exception as exc:
                    raise OutputError(f"Sink {sink!r} rejected a row for table '{self.name}'") from exc
            self._rows.append(record)

    def build(self) -> pl.DataFrame:
        """Return the buffered rows as a frame in layout order."""
        with self._lock:
            return rows_to_frame(self._columns, self._rows)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sinks = list(reversed(self._sinks))
            self._sinks.clear()
        failures: list[tuple[TableSink, Exception]] = []
        for sink in sinks:
            try:
                sink.close()
            except Exception as exc:  # noqa: BLE001
                failures.append((sink, exc))
        if not failures:
            logger.debug("Closed table '%s' with %d row(s).", self.name, len(self._rows))
            return
        first_sink, first = failures[0]
        for sink, failure in failures[1:]:
            first.add_note(f"also failed closing {sink!r}: {failure!r}")
        raise OutputError(f"Failed to close sink {first_sink!r} for table '{self.name}'") from first

    def __repr__(self) -> str:
        return f"ResultTable({self.name!r}, columns={len(self._columns)})"


__all__ = ["ResultTable"]
