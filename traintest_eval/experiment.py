"""Train-test experiment façade: collect inputs, wire outputs, run the scheduler."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Sequence

import polars as pl
from pydantic import BaseModel, Field, field_validator

from traintest_eval.graph import Resolver
from traintest_eval.job import RunContext
from traintest_eval.layout import build_layout
from traintest_eval.output import ResourceCloser, ResultTable, TableSink, open_table_sink
from traintest_eval.scheduler import JobScheduler, resolve_thread_count
from traintest_eval.types import AlgorithmVariant, DataCondition, EvalTask
from traintest_eval.utils.shared import ensure_root_logging

logger = logging.getLogger(__name__)

SinkFactory = Callable[[Sequence[str]], TableSink]


class ExperimentSettings(BaseModel):
    """Process-level settings for one experiment run."""

    thread_count: int = Field(default=0, ge=0)
    share_components: bool = True
    cache_dir: Path | None = None
    output_file: Path | None = None
    user_output_file: Path | None = None
    log_level: str = "INFO"
    show_progress: bool = False

    @field_validator("cache_dir", "output_file", "user_output_file", mode="before")
    @classmethod
    def _expand_optional_path(cls, value: Path | str | None) -> Path | None:
        if value is None:
            return None
        return Path(value).expanduser()

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = str(value).upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level


class TrainTestExperiment:
    """Evaluate every algorithm on every data set with a common set of tasks.

    Each (algorithm, data set) pair becomes one job producing one row of the result
    table. Components shared between the jobs of an isolation group are built once.
    """

    def __init__(
        self,
        settings: ExperimentSettings | None = None,
        *,
        algorithms: Iterable[AlgorithmVariant] = (),
        data_sets: Iterable[DataCondition] = (),
        tasks: Iterable[EvalTask] = (),
        resolver: Resolver | None = None,
    ) -> None:
        self.settings = settings if settings is not None else ExperimentSettings()
        self.algorithms: list[AlgorithmVariant] = list(algorithms)
        self.data_sets: list[DataCondition] = list(data_sets)
        self.tasks: list[EvalTask] = list(tasks)
        self.resolver = resolver
        self._sink_factories: list[SinkFactory] = []
        self._user_results: pl.DataFrame | None = None
        self._scheduler: JobScheduler | None = None

    def add_algorithm(self, algorithm: AlgorithmVariant) -> None:
        self.algorithms.append(algorithm)

    def add_algorithms(self, algorithms: Iterable[AlgorithmVariant]) -> None:
        self.algorithms.extend(algorithms)

    def add_data_set(self, data_set: DataCondition) -> None:
        self.data_sets.append(data_set)

    def add_data_sets(self, data_sets: Iterable[DataCondition]) -> None:
        self.data_sets.extend(data_sets)

    def add_task(self, task: EvalTask) -> None:
        self.tasks.append(task)

    def add_sink(self, factory: SinkFactory) -> None:
        """Register an extra sink for the global table; ``factory`` receives the column list."""
        self._sink_factories.append(factory)

    @property
    def thread_count(self) -> int:
        return resolve_thread_count(self.settings.thread_count)

    @property
    def user_results(self) -> pl.DataFrame | None:
        """Per-user rows of the last run, when a per-user output was configured."""
        return self._user_results

    def request_stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.request_stop()

    def run(self) -> pl.DataFrame:
        settings = self.settings
        ensure_root_logging(settings.log_level)
        layout = build_layout(self.data_sets, self.algorithms, self.tasks)
        scheduler = JobScheduler(
            self.thread_count,
            share_components=settings.share_components,
            cache_dir=settings.cache_dir,
            resolver=self.resolver,
            show_progress=settings.show_progress,
        )
        self._scheduler = scheduler
        self._user_results = None
        logger.info(
            "Running %d algorithm(s) on %d data set(s) with %d task(s).",
            len(self.algorithms),
            len(self.data_sets),
            len(self.tasks),
        )

        with ResourceCloser() as closer:
            global_table = closer.register(ResultTable(layout.columns, name="results"))
            if settings.output_file is not None:
                global_table.attach(open_table_sink(settings.output_file, layout.columns))
            for factory in self._sink_factories:
                global_table.attach(factory(layout.columns))

            user_table: ResultTable | None = None
            if settings.user_output_file is not None:
                user_table = closer.register(ResultTable(layout.user_columns, name="user results"))
                user_table.attach(open_table_sink(settings.user_output_file, layout.user_columns))

            context = RunContext(layout=layout, global_output=global_table, user_output=user_table)
            job_groups = scheduler.build_job_list(self.data_sets, self.algorithms, self.tasks, context)
            scheduler.run(job_groups)

        if user_table is not None:
            self._user_results = user_table.build()
        return global_table.build()


__all__ = ["ExperimentSettings", "SinkFactory", "TrainTestExperiment"]
