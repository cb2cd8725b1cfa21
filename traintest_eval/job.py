"""Single (algorithm, data condition) evaluation job."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Hashable, Sequence

from traintest_eval.cache import ComponentCache
from traintest_eval.errors import BuildError, JobCancelledError, TaskError
from traintest_eval.graph import MergePool, Resolver
from traintest_eval.layout import BUILD_TIME_COLUMN, TEST_TIME_COLUMN, OutputLayout
from traintest_eval.output.table import ResultTable
from traintest_eval.types import AlgorithmVariant, DataCondition, EvalTask, TaskResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    """Outputs shared by every job of a run."""

    layout: OutputLayout
    global_output: ResultTable
    user_output: ResultTable | None = None


class ExperimentJob:
    """Build one algorithm on one data condition, run the tasks, write one result row."""

    def __init__(
        self,
        algorithm: AlgorithmVariant,
        condition: DataCondition,
        tasks: Sequence[EvalTask],
        context: RunContext,
        *,
        resolver: Resolver,
        group_key: Hashable,
        cache: ComponentCache | None = None,
        merge_pool: MergePool | None = None,
    ) -> None:
        self.algorithm = algorithm
        self.condition = condition
        self.tasks = tuple(tasks)
        self.context = context
        self.resolver = resolver
        self.group_key = group_key
        self.cache = cache
        self.merge_pool = merge_pool
        self._started = False
        self._start_lock = threading.Lock()

    @property
    def label(self) -> str:
        return f"{self.algorithm.name} on {self.condition.condition_id}"

    def run(self, cancel_event: threading.Event | None = None) -> dict[str, Any]:
        with self._start_lock:
            if self._started:
                raise RuntimeError(f"Job {self.label} has already been run.")
            self._started = True
        if cancel_event is None:
            cancel_event = threading.Event()

        self._check_cancelled(cancel_event, "before build")
        logger.info("Building %s.", self.label)
        start = perf_counter()
        try:
            buildable = self.resolver.resolve(self.algorithm.config, self.merge_pool, self.condition)
            component = self.resolver.build(buildable, self._lookup())
        except Exception as exc:
            raise BuildError(f"error building {self.label}: {exc}") from exc
        build_time = perf_counter() - start
        logger.debug("Built %s in %.2fs.", self.label, build_time)

        metrics: dict[str, Any] = {}
        user_rows: list[dict[str, Any]] = []
        start = perf_counter()
        for task in self.tasks:
            self._check_cancelled(cancel_event, f"before task {_task_name(task)}")
            try:
                result = task.run(component, self.condition)
            except Exception as exc:
                raise TaskError(f"error running {_task_name(task)} for {self.label}: {exc}") from exc
            if isinstance(result, TaskResult):
                metrics.update(result.metrics)
                user_rows.extend(dict(user_row) for user_row in result.user_rows)
            elif result:
                metrics.update(result)
        test_time = perf_counter() - start

        attributes = self.context.layout.condition_values(self.condition, self.algorithm)
        row = dict(attributes)
        row[BUILD_TIME_COLUMN] = build_time
        row[TEST_TIME_COLUMN] = test_time
        row.update(metrics)

        self._check_cancelled(cancel_event, "before writing results")
        self.context.global_output.write(row)
        if self.context.user_output is not None:
            for user_row in user_rows:
                self.context.user_output.write({**attributes, **user_row})
        logger.info("Finished %s (build %.2fs, test %.2fs).", self.label, build_time, test_time)
        return row

    __call__ = run

    def _lookup(self) -> Callable[[str, Callable[[], Any]], Any]:
        cache = self.cache
        if cache is None:
            return lambda build_key, builder: builder()
        group_key = self.group_key
        return lambda build_key, builder: cache.build_or_reuse(group_key, build_key, builder)

    def _check_cancelled(self, cancel_event: threading.Event, stage: str) -> None:
        if cancel_event.is_set():
            logger.debug("Job %s cancelled %s.", self.label, stage)
            raise JobCancelledError(f"{self.label} cancelled {stage}")

    def __repr__(self) -> str:
        return f"ExperimentJob({self.label!r})"


def _task_name(task: EvalTask) -> str:
    return getattr(task, "name", None) or type(task).__name__


__all__ = ["ExperimentJob", "RunContext"]
