import threading

import pytest

from traintest_eval.errors import BuildError, JobCancelledError, RowLayoutError, TaskError
from traintest_eval.graph import ComponentSpec, GraphResolver
from traintest_eval.job import ExperimentJob, RunContext
from traintest_eval.layout import build_layout
from traintest_eval.output.table import ResultTable
from traintest_eval.types import AlgorithmVariant, DataCondition, TaskResult


def make_model(k):
    return {"k": k}


def broken_model(k):
    raise ValueError("cannot fit")


class RmseTask:
    global_columns = ("rmse",)
    user_columns = ("user", "error")

    def __init__(self):
        self.calls = 0

    def run(self, component, condition):
        self.calls += 1
        return TaskResult(
            metrics={"rmse": component["k"] / 10},
            user_rows=[{"user": 1, "error": 0.1}, {"user": 2, "error": 0.2}],
        )


class FailingTask:
    def run(self, component, condition):
        raise KeyError("missing user")


class CancellingTask:
    def __init__(self, event: threading.Event):
        self.event = event

    def run(self, component, condition):
        self.event.set()
        return {}


def _job(algorithm, tasks, *, with_users: bool = False):
    condition = DataCondition("c1", {"split": "A"})
    layout = build_layout([condition], [algorithm], tasks)
    global_output = ResultTable(layout.columns)
    user_output = ResultTable(layout.user_columns, name="user results") if with_users else None
    context = RunContext(layout=layout, global_output=global_output, user_output=user_output)
    job = ExperimentJob(algorithm, condition, tasks, context, resolver=GraphResolver(), group_key="g")
    return job, context


def test_job_writes_one_row_with_times_and_metrics():
    algorithm = AlgorithmVariant("knn", {"k": 10}, config=ComponentSpec(make_model, {"k": 10}))
    job, context = _job(algorithm, [RmseTask()])

    row = job()

    assert context.global_output.rows == [row]
    assert row["split"] == "A"
    assert row["k"] == 10
    assert row["rmse"] == pytest.approx(1.0)
    assert row["BuildTime"] >= 0
    assert row["TestTime"] >= 0


def test_job_writes_user_rows_with_attributes():
    algorithm = AlgorithmVariant("knn", {"k": 10}, config=ComponentSpec(make_model, {"k": 10}))
    job, context = _job(algorithm, [RmseTask()], with_users=True)

    job.run()

    assert context.user_output.rows == [
        {"split": "A", "k": 10, "user": 1, "error": 0.1},
        {"split": "A", "k": 10, "user": 2, "error": 0.2},
    ]


def test_build_failure_is_wrapped():
    algorithm = AlgorithmVariant("broken", {"k": 1}, config=ComponentSpec(broken_model, {"k": 1}))
    job, context = _job(algorithm, [RmseTask()])

    with pytest.raises(BuildError) as excinfo:
        job.run()

    assert isinstance(excinfo.value.__cause__, ValueError)
    assert len(context.global_output) == 0


def test_task_failure_is_wrapped():
    algorithm = AlgorithmVariant("knn", {"k": 1}, config=ComponentSpec(make_model, {"k": 1}))
    job, context = _job(algorithm, [FailingTask()])

    with pytest.raises(TaskError) as excinfo:
        job.run()

    assert isinstance(excinfo.value.__cause__, KeyError)
    assert len(context.global_output) == 0


def test_cancelled_job_writes_nothing():
    algorithm = AlgorithmVariant("knn", {"k": 1}, config=ComponentSpec(make_model, {"k": 1}))
    task = RmseTask()
    job, context = _job(algorithm, [task])
    event = threading.Event()
    event.set()

    with pytest.raises(JobCancelledError):
        job.run(event)

    assert task.calls == 0
    assert len(context.global_output) == 0


def test_cancel_between_tasks_skips_remaining_tasks():
    algorithm = AlgorithmVariant("knn", {"k": 1}, config=ComponentSpec(make_model, {"k": 1}))
    event = threading.Event()
    later = RmseTask()
    job, context = _job(algorithm, [CancellingTask(event), later])

    with pytest.raises(JobCancelledError):
        job.run(event)

    assert later.calls == 0
    assert len(context.global_output) == 0


def test_job_runs_at_most_once():
    algorithm = AlgorithmVariant("knn", {"k": 1}, config=ComponentSpec(make_model, {"k": 1}))
    job, _ = _job(algorithm, [RmseTask()])
    job.run()

    with pytest.raises(RuntimeError, match="already been run"):
        job.run()


class UndeclaredMetricTask:
    def run(self, component, condition):
        return {"precision": 0.5}


def test_undeclared_metric_fails_the_job():
    algorithm = AlgorithmVariant("knn", {"k": 1}, config=ComponentSpec(make_model, {"k": 1}))
    job, context = _job(algorithm, [UndeclaredMetricTask()])

    with pytest.raises(RowLayoutError, match="precision"):
        job.run()

    assert len(context.global_output) == 0
