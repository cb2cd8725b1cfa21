"""Core data structures for train-test experiments."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Hashable, Mapping, Protocol, Sequence, runtime_checkable


def _freeze(values: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType({str(key): value for key, value in (values or {}).items()})


@dataclass(frozen=True, eq=False)
class DataCondition:
    """One train/test data condition.

    Conditions sharing an ``isolation_group`` may share cached components. When no
    group is given each condition gets its own, so conditions are independent.
    ``data_version`` names the content of ``train`` and ``test``; components cached on
    disk for this condition are reused only under the same version.
    """

    condition_id: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    isolation_group: Hashable = field(default_factory=uuid.uuid4)
    train: Any = field(default=None, repr=False)
    test: Any = field(default=None, repr=False)
    data_version: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _freeze(self.attributes))


@dataclass(frozen=True, eq=False)
class AlgorithmVariant:
    """A named, configured algorithm to evaluate."""

    name: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    config: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _freeze(self.attributes))


@dataclass(frozen=True)
class TaskResult:
    """Output of a task that also reports per-user measurements."""

    metrics: Mapping[str, Any] = field(default_factory=dict)
    user_rows: Sequence[Mapping[str, Any]] = ()


@runtime_checkable
class EvalTask(Protocol):
    """Something that measures a built component on a data condition.

    ``global_columns`` names every metric key the task returns and ``user_columns``
    every key of its per-user rows. Both attributes may be omitted only by tasks that
    return no such keys: an undeclared key fails the run with ``RowLayoutError``.
    """

    def run(self, component: Any, condition: DataCondition) -> Mapping[str, Any] | TaskResult: ...


def task_global_columns(task: EvalTask) -> tuple[str, ...]:
    return tuple(str(column) for column in getattr(task, "global_columns", None) or ())


def task_user_columns(task: EvalTask) -> tuple[str, ...]:
    return tuple(str(column) for column in getattr(task, "user_columns", None) or ())


__all__ = [
    "AlgorithmVariant",
    "DataCondition",
    "EvalTask",
    "TaskResult",
    "task_global_columns",
    "task_user_columns",
]
