"""Group-by-group job scheduling over a shared worker pool."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Hashable, Iterable, Mapping, Sequence

from rich.progress import Progress

from traintest_eval.cache import ComponentCache
from traintest_eval.errors import (
    CancellationError,
    ConfigurationError,
    EvaluationError,
    RunCancelledError,
)
from traintest_eval.graph import GraphResolver, MergePool, Resolver
from traintest_eval.job import ExperimentJob, RunContext
from traintest_eval.types import AlgorithmVariant, DataCondition, EvalTask

logger = logging.getLogger(__name__)

THREAD_COUNT_ENV_VAR = "TRAINTEST_THREAD_COUNT"

JobGroups = Mapping[Hashable, Sequence[ExperimentJob]]


class RunState:
    idle = "idle"
    building = "building"
    executing = "executing"
    done = "done"
    failed = "failed"


def resolve_thread_count(explicit: int | None = None) -> int:
    """Resolve the worker count: explicit setting, then environment override, then CPU count."""
    if explicit is not None and explicit > 0:
        return int(explicit)
    raw = os.environ.get(THREAD_COUNT_ENV_VAR, "").strip()
    if raw:
        try:
            from_env = int(raw)
        except ValueError as exc:
            raise ConfigurationError(f"{THREAD_COUNT_ENV_VAR} must be an integer, got {raw!r}.") from exc
        if from_env > 0:
            return from_env
    return os.cpu_count() or 1


class JobScheduler:
    """Build and run the job list of an experiment.

    Jobs are grouped by isolation group. Groups run strictly one after another; with more
    than one thread, the jobs of a group run concurrently on a pool shared by the whole run
    and are drained in completion order. The first failure cancels the rest of its group and
    stops the run.
    """

    def __init__(
        self,
        thread_count: int = 1,
        *,
        share_components: bool = True,
        cache_dir: Path | str | None = None,
        resolver: Resolver | None = None,
        poll_interval: float = 0.1,
        show_progress: bool = False,
    ) -> None:
        self.thread_count = max(1, int(thread_count))
        self.share_components = share_components
        self.cache_dir = cache_dir
        self.resolver = resolver if resolver is not None else GraphResolver(fingerprint_data=cache_dir is not None)
        self.poll_interval = poll_interval
        self.show_progress = show_progress
        self.state = RunState.idle
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Ask a running scheduler to cancel the current group and stop."""
        logger.warning("Stop requested; cancelling outstanding jobs.")
        self._stop.set()

    def build_job_list(
        self,
        conditions: Iterable[DataCondition],
        algorithms: Sequence[AlgorithmVariant],
        tasks: Sequence[EvalTask],
        context: RunContext,
    ) -> dict[Hashable, list[ExperimentJob]]:
        """Create one job per (condition, algorithm) pair, keyed by isolation group."""
        self.state = RunState.building
        cache: ComponentCache | None = None
        if self.share_components:
            cache = ComponentCache(self.cache_dir)
        pools: dict[Hashable, MergePool] = {}
        jobs: dict[Hashable, list[ExperimentJob]] = {}
        for condition in conditions:
            group = condition.isolation_group
            pool: MergePool | None = None
            if cache is not None:
                pool = pools.setdefault(group, MergePool())
            for algorithm in algorithms:
                job = ExperimentJob(
                    algorithm,
                    condition,
                    tasks,
                    context,
                    resolver=self.resolver,
                    group_key=group,
                    cache=cache,
                    merge_pool=pool,
                )
                jobs.setdefault(group, []).append(job)
        logger.info(
            "Planned %d job(s) in %d isolation group(s).",
            sum(len(group_jobs) for group_jobs in jobs.values()),
            len(jobs),
        )
        return jobs

    def run(self, job_groups: JobGroups) -> None:
        self.state = RunState.executing
        total = sum(len(group_jobs) for group_jobs in job_groups.values())
        try:
            with Progress(disable=not self.show_progress, transient=True) as progress:
                progress_task = progress.add_task("Running evaluations", total=total)

                def advance() -> None:
                    progress.advance(progress_task)

                if self.thread_count > 1:
                    self._run_parallel(job_groups, advance)
                else:
                    self._run_sequential(job_groups, advance)
        except BaseException:
            self.state = RunState.failed
            raise
        self.state = RunState.done
        logger.info("Completed %d job(s).", total)

    def _run_sequential(self, job_groups: JobGroups, advance) -> None:
        logger.info("Running in a single thread.")
        never_cancelled = threading.Event()
        for group, group_jobs in job_groups.items():
            logger.info("Running group %s (%d job(s)).", group, len(group_jobs))
            for job in group_jobs:
                if self._stop.is_set():
                    raise RunCancelledError(f"run stopped before {job.label}")
                _run_job(job, never_cancelled)
                advance()

    def _run_parallel(self, job_groups: JobGroups, advance) -> None:
        logger.info("Running with %d threads.", self.thread_count)
        executor = ThreadPoolExecutor(max_workers=self.thread_count, thread_name_prefix="traintest-eval")
        try:
            for group, group_jobs in job_groups.items():
                if self._stop.is_set():
                    raise RunCancelledError(f"run stopped before group {group}")
                logger.info("Running group %s (%d job(s)).", group, len(group_jobs))
                self._drain_group(executor, group_jobs, advance)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _drain_group(self, executor: ThreadPoolExecutor, group_jobs: Sequence[ExperimentJob], advance) -> None:
        cancel_event = threading.Event()
        futures: dict[Future[None], ExperimentJob] = {
            executor.submit(_run_job, job, cancel_event): job for job in group_jobs
        }
        pending = set(futures)
        try:
            while pending:
                if self._stop.is_set():
                    _cancel_group(cancel_event, futures)
                    raise RunCancelledError(f"run stopped with {len(pending)} job(s) outstanding in group")
                done, pending = wait(pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    try:
                        future.result()
                    except BaseException:
                        logger.error("Job %s failed; cancelling the rest of its group.", futures[future].label)
                        _cancel_group(cancel_event, futures)
                        raise
                    advance()
        except KeyboardInterrupt:
            logger.warning("Interrupted; cancelling %d outstanding job(s).", len(pending))
            _cancel_group(cancel_event, futures)
            raise


def _run_job(job: ExperimentJob, cancel_event: threading.Event) -> None:
    try:
        job.run(cancel_event)
    except (EvaluationError, CancellationError):
        raise
    except Exception as exc:
        raise EvaluationError(f"error running evaluation {job.label}") from exc


def _cancel_group(cancel_event: threading.Event, futures: Mapping[Future[None], ExperimentJob]) -> None:
    cancel_event.set()
    for future in futures:
        future.cancel()


__all__ = ["JobGroups", "JobScheduler", "RunState", "THREAD_COUNT_ENV_VAR", "resolve_thread_count"]
