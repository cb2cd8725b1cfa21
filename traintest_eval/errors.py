"""Error taxonomy for train-test experiment runs."""

from __future__ import annotations


class TrainTestError(Exception):
    """Base class for every error raised by the evaluation engine."""


class ConfigurationError(TrainTestError, ValueError):
    """Raised when experiment settings cannot be interpreted."""


class EvaluationError(TrainTestError):
    """Fatal error that aborts an experiment run.

    The originating exception, when there is one, is available as ``__cause__``.
    """


class BuildError(EvaluationError):
    """Raised when an algorithm's components cannot be resolved or built."""


class TaskError(EvaluationError):
    """Raised when an evaluation task fails against a built component."""


class OutputError(EvaluationError):
    """Raised when a result table or one of its sinks cannot open, write or close."""


class RowLayoutError(OutputError):
    """Raised when a result row carries columns outside the table layout."""


class CancellationError(TrainTestError):
    """Raised when work is abandoned before it completed."""


class JobCancelledError(CancellationError):
    """Raised inside a job that observed its group's cancel signal."""


class RunCancelledError(CancellationError):
    """Raised by the scheduler when a stop was requested mid-run."""


__all__ = [
    "BuildError",
    "CancellationError",
    "ConfigurationError",
    "EvaluationError",
    "JobCancelledError",
    "OutputError",
    "RowLayoutError",
    "RunCancelledError",
    "TaskError",
    "TrainTestError",
]
