"""Result column layout derived from conditions, algorithms and tasks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from traintest_eval.types import AlgorithmVariant, DataCondition, EvalTask, task_global_columns, task_user_columns

logger = logging.getLogger(__name__)

BUILD_TIME_COLUMN = "BuildTime"
TEST_TIME_COLUMN = "TestTime"
MEASURE_COLUMNS: tuple[str, ...] = (BUILD_TIME_COLUMN, TEST_TIME_COLUMN)


def _ordered_union(*groups: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for group in groups:
        for column in group:
            seen.setdefault(column, None)
    return tuple(seen)


@dataclass(frozen=True)
class OutputLayout:
    """Column layout shared by every result row of a run."""

    condition_columns: tuple[str, ...]
    algorithm_columns: tuple[str, ...]
    task_columns: tuple[str, ...] = ()
    task_user_columns: tuple[str, ...] = ()

    @property
    def columns(self) -> tuple[str, ...]:
        return _ordered_union(self.condition_columns, self.algorithm_columns, MEASURE_COLUMNS, self.task_columns)

    @property
    def user_columns(self) -> tuple[str, ...]:
        return _ordered_union(self.condition_columns, self.algorithm_columns, self.task_user_columns)

    def condition_values(self, condition: DataCondition, algorithm: AlgorithmVariant) -> dict[str, Any]:
        """Attribute values identifying one (condition, algorithm) pair.

        Algorithm attributes win when both sides define the same key.
        """
        columns = _ordered_union(self.condition_columns, self.algorithm_columns)
        values: dict[str, Any] = {column: None for column in columns}
        values.update(condition.attributes)
        values.update(algorithm.attributes)
        return values


def build_layout(
    conditions: Sequence[DataCondition],
    algorithms: Sequence[AlgorithmVariant],
    tasks: Sequence[EvalTask] = (),
) -> OutputLayout:
    """Compute the output layout for a run."""
    if not conditions or not algorithms:
        logger.warning(
            "Building layout with %d data condition(s) and %d algorithm(s); the run will produce no rows.",
            len(conditions),
            len(algorithms),
        )
    condition_columns = _ordered_union(*(condition.attributes.keys() for condition in conditions))
    algorithm_columns = _ordered_union(*(algorithm.attributes.keys() for algorithm in algorithms))
    layout = OutputLayout(
        condition_columns=condition_columns,
        algorithm_columns=algorithm_columns,
        task_columns=_ordered_union(*(task_global_columns(task) for task in tasks)),
        task_user_columns=_ordered_union(*(task_user_columns(task) for task in tasks)),
    )
    logger.debug("Output layout columns: %s", ", ".join(layout.columns))
    return layout


__all__ = ["BUILD_TIME_COLUMN", "MEASURE_COLUMNS", "OutputLayout", "TEST_TIME_COLUMN", "build_layout"]
