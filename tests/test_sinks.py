from pathlib import Path

import polars as pl
import pyarrow.csv as pacsv
import pytest

from traintest_eval.errors import OutputError
from traintest_eval.output.sinks import CsvTableSink, ParquetTableSink, open_table_sink


def test_open_table_sink_picks_implementation_by_suffix(tmp_path: Path):
    csv_sink = open_table_sink(tmp_path / "out.csv", ["k"])
    parquet_sink = open_table_sink(tmp_path / "nested" / "out.parquet", ["k"])
    try:
        assert isinstance(csv_sink, CsvTableSink)
        assert isinstance(parquet_sink, ParquetTableSink)
        assert (tmp_path / "nested").is_dir()
    finally:
        csv_sink.close()
        parquet_sink.close()


@pytest.mark.parametrize("name", ["results.csv", "results.csv.gz"])
def test_csv_sink_streams_rows_as_strings(tmp_path: Path, name: str):
    path = tmp_path / name
    sink = open_table_sink(path, ["split", "k", "rmse"])
    sink.write_row({"split": "A", "k": 10, "rmse": 0.25})
    sink.write_row({"split": "B", "k": None, "rmse": 0.5})
    sink.close()
    sink.close()

    table = pacsv.read_csv(
        str(path),
        convert_options=pacsv.ConvertOptions(column_types={"split": "string", "k": "string", "rmse": "string"}),
    )
    assert table.column_names == ["split", "k", "rmse"]
    rows = table.to_pylist()
    assert rows[0] == {"split": "A", "k": "10", "rmse": "0.25"}
    assert rows[1]["split"] == "B"
    assert rows[1]["k"] in (None, "")


def test_parquet_sink_writes_on_close(tmp_path: Path):
    path = tmp_path / "results.parquet"
    sink = ParquetTableSink(path, ["split", "rmse"])
    sink.write_row({"split": "A", "rmse": 0.25})
    sink.write_row({"split": "B", "rmse": 0.5})

    assert not path.exists()
    sink.close()

    frame = pl.read_parquet(path)
    assert frame.columns == ["split", "rmse"]
    assert frame["rmse"].to_list() == [0.25, 0.5]
    assert not any(p.name.endswith(".tmp") for p in tmp_path.iterdir())


def test_open_failure_raises_output_error(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(OutputError):
        open_table_sink(blocker / "out.csv", ["k"])
