"""Train-test evaluation engine with shared component building."""

from traintest_eval.cache import ComponentCache
from traintest_eval.config import load_experiment_settings
from traintest_eval.errors import (
    BuildError,
    CancellationError,
    ConfigurationError,
    EvaluationError,
    JobCancelledError,
    OutputError,
    RowLayoutError,
    RunCancelledError,
    TaskError,
    TrainTestError,
)
from traintest_eval.experiment import ExperimentSettings, TrainTestExperiment
from traintest_eval.graph import ComponentSpec, GraphResolver, MergePool, holdout_data, train_data
from traintest_eval.job import ExperimentJob, RunContext
from traintest_eval.layout import OutputLayout, build_layout
from traintest_eval.output import ResultTable, open_table_sink
from traintest_eval.scheduler import JobScheduler, RunState, resolve_thread_count
from traintest_eval.types import AlgorithmVariant, DataCondition, EvalTask, TaskResult

__version__ = "0.1.0"

__all__ = [
    "AlgorithmVariant",
    "BuildError",
    "CancellationError",
    "ComponentCache",
    "ComponentSpec",
    "ConfigurationError",
    "DataCondition",
    "EvalTask",
    "EvaluationError",
    "ExperimentJob",
    "ExperimentSettings",
    "GraphResolver",
    "JobCancelledError",
    "JobScheduler",
    "MergePool",
    "OutputError",
    "OutputLayout",
    "ResultTable",
    "RowLayoutError",
    "RunCancelledError",
    "RunContext",
    "RunState",
    "TaskError",
    "TaskResult",
    "TrainTestError",
    "TrainTestExperiment",
    "build_layout",
    "holdout_data",
    "load_experiment_settings",
    "open_table_sink",
    "resolve_thread_count",
    "train_data",
    "__version__",
]
