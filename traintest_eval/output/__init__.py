"""Result tables, file sinks and scoped output teardown."""

from .closer import ResourceCloser
from .sinks import CsvTableSink, ParquetTableSink, TableSink, open_table_sink
from .table import ResultTable

__all__ = [
    "CsvTableSink",
    "ParquetTableSink",
    "ResourceCloser",
    "ResultTable",
    "TableSink",
    "open_table_sink",
]
