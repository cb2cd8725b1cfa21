import pytest

from traintest_eval.errors import OutputError
from traintest_eval.output.closer import ResourceCloser


class DummyResource:
    def __init__(self, name: str, log: list, *, fail: bool = False):
        self.name = name
        self.log = log
        self.fail = fail

    def close(self):
        self.log.append(self.name)
        if self.fail:
            raise OSError(f"{self.name} failed")

    def __repr__(self):
        return f"DummyResource({self.name})"


def test_resources_closed_in_reverse_order():
    log: list = []
    with ResourceCloser() as closer:
        closer.register(DummyResource("a", log))
        closer.register(DummyResource("b", log))

    assert log == ["b", "a"]


def test_close_failure_without_primary_error_raises_output_error():
    log: list = []
    with pytest.raises(OutputError) as excinfo:
        with ResourceCloser() as closer:
            closer.register(DummyResource("a", log, fail=True))
            closer.register(DummyResource("b", log, fail=True))

    assert log == ["b", "a"]
    cause = excinfo.value.__cause__
    assert str(cause) == "b failed"
    assert any("a failed" in note for note in cause.__notes__)


def test_primary_error_wins_over_close_failures():
    log: list = []
    with pytest.raises(RuntimeError) as excinfo:
        with ResourceCloser() as closer:
            closer.register(DummyResource("a", log, fail=True))
            closer.register(DummyResource("b", log))
            raise RuntimeError("primary")

    assert str(excinfo.value) == "primary"
    assert log == ["b", "a"]
    assert any("a failed" in note for note in excinfo.value.__notes__)


def test_output_error_from_close_is_raised_as_is():
    class FailingTable:
        def close(self):
            raise OutputError("table close failed")

    with pytest.raises(OutputError, match="table close failed"):
        with ResourceCloser() as closer:
            closer.register(FailingTable())
