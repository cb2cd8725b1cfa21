"""Component graphs with structural identity, merge pools and a default resolver.

An algorithm configuration is a tree of :class:`ComponentSpec` nodes. Two nodes are
equal when they share a factory, parameters and (recursively) dependencies, which makes
their ``build_key`` a structural signature. Jobs in one isolation group intern their
graphs into a shared :class:`MergePool`, so structurally equal sub-components resolve to
one canonical node, and the component cache builds each shareable node once.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import os
import pickle
import threading
import uuid
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol

from traintest_eval.types import DataCondition
from traintest_eval.utils.shared import compute_checksum, qualified_name

logger = logging.getLogger(__name__)

ComponentLookup = Callable[[str, Callable[[], Any]], Any]

_UNSET = object()


def _unbound_data(role: str) -> Any:
    raise RuntimeError(f"{role} data placeholder was not bound to a data condition.")


def _param_default(value: Any) -> Any:
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    raise TypeError(
        f"Component parameter of type {type(value).__name__} has no structural key; "
        "pass it as a dependency built with ComponentSpec.constant(value, key=...)."
    )


def _payload_fingerprint(payload: Any) -> str:
    try:
        return hashlib.sha256(pickle.dumps(payload, protocol=pickle.HIGHEST_PROTOCOL)).hexdigest()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cannot fingerprint data payload (%s); components built on it are not reused across runs.", exc)
        return f"run-{uuid.uuid4().hex}"


@dataclass(frozen=True, eq=False)
class ComponentSpec:
    """Node of an algorithm's component graph.

    ``factory`` is called with ``params`` and the built ``deps`` as keyword arguments.
    Nodes marked ``shareable=False`` are rebuilt for every job.
    """

    factory: Callable[..., Any]
    params: Mapping[str, Any] = field(default_factory=dict)
    deps: Mapping[str, ComponentSpec] = field(default_factory=dict)
    shareable: bool = True
    value: Any = field(default=_UNSET, repr=False)
    value_key: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "deps", MappingProxyType(dict(self.deps)))

    @classmethod
    def constant(cls, value: Any, *, key: Any) -> ComponentSpec:
        """A pre-built value identified by ``key`` rather than by its contents."""
        return cls(factory=_unbound_data, value=value, value_key=key, shareable=False)

    @property
    def is_constant(self) -> bool:
        return self.value is not _UNSET

    @property
    def is_placeholder(self) -> bool:
        return self.factory is _unbound_data and not self.is_constant

    @cached_property
    def build_key(self) -> str:
        if self.is_constant:
            return compute_checksum({"constant": self.value_key}, default=_param_default)
        return compute_checksum(
            {
                "factory": qualified_name(self.factory),
                "params": dict(self.params),
                "deps": {name: dep.build_key for name, dep in sorted(self.deps.items())},
            },
            default=_param_default,
        )

    def instantiate(self, deps: Mapping[str, Any]) -> Any:
        if self.is_constant:
            return self.value
        return self.factory(**self.params, **deps)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ComponentSpec):
            return NotImplemented
        return self.build_key == other.build_key

    def __hash__(self) -> int:
        return hash(self.build_key)


def train_data() -> ComponentSpec:
    """Placeholder for the condition's training data."""
    return ComponentSpec(_unbound_data, params={"role": "train"}, shareable=False)


def holdout_data() -> ComponentSpec:
    """Placeholder for the condition's held-out test data."""
    return ComponentSpec(_unbound_data, params={"role": "test"}, shareable=False)


class MergePool:
    """Canonical node pool shared by the jobs of one isolation group."""

    def __init__(self) -> None:
        self._nodes: dict[str, ComponentSpec] = {}
        self._lock = threading.Lock()

    def merge(self, spec: ComponentSpec) -> ComponentSpec:
        with self._lock:
            return self._merge(spec)

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def _merge(self, spec: ComponentSpec) -> ComponentSpec:
        existing = self._nodes.get(spec.build_key)
        if existing is not None:
            return existing
        merged_deps = {name: self._merge(dep) for name, dep in spec.deps.items()}
        if any(merged_deps[name] is not dep for name, dep in spec.deps.items()):
            spec = dataclasses.replace(spec, deps=merged_deps)
        self._nodes[spec.build_key] = spec
        return spec


class Resolver(Protocol):
    """Turns an algorithm's opaque configuration into a built component."""

    def resolve(self, descriptor: Any, merge_pool: MergePool | None, condition: DataCondition) -> Any: ...

    def build(self, buildable: Any, lookup: ComponentLookup) -> Any: ...


class GraphResolver:
    """Default resolver for :class:`ComponentSpec` configurations.

    Bound data is keyed by the condition id plus its ``data_version`` when one is set.
    Otherwise, with ``fingerprint_data=True``, a SHA256 of the pickled payload is used,
    so components persisted by an earlier run are only reused on identical data.
    """

    def __init__(self, *, fingerprint_data: bool = False) -> None:
        self.fingerprint_data = fingerprint_data
        self._fingerprints: dict[tuple[DataCondition, str], str] = {}
        self._lock = threading.Lock()

    def data_fingerprint(self, condition: DataCondition, role: str) -> str | None:
        if condition.data_version is not None:
            return str(condition.data_version)
        if not self.fingerprint_data:
            return None
        with self._lock:
            fingerprint = self._fingerprints.get((condition, role))
            if fingerprint is None:
                fingerprint = _payload_fingerprint(getattr(condition, role))
                self._fingerprints[(condition, role)] = fingerprint
            return fingerprint

    def resolve(self, descriptor: Any, merge_pool: MergePool | None, condition: DataCondition) -> ComponentSpec:
        if not isinstance(descriptor, ComponentSpec):
            raise TypeError(f"Expected a ComponentSpec configuration, got {type(descriptor).__name__}.")
        bound = _bind(descriptor, condition, self.data_fingerprint)
        if merge_pool is None:
            return bound
        return merge_pool.merge(bound)

    def build(self, buildable: ComponentSpec, lookup: ComponentLookup) -> Any:
        built: dict[str, Any] = {}

        def instantiate(node: ComponentSpec) -> Any:
            key = node.build_key
            if key in built:
                return built[key]

            def builder() -> Any:
                return node.instantiate({name: instantiate(dep) for name, dep in node.deps.items()})

            if node.shareable and not node.is_constant:
                value = lookup(key, builder)
            else:
                value = builder()
            built[key] = value
            return value

        return instantiate(buildable)


def _bind(
    spec: ComponentSpec,
    condition: DataCondition,
    fingerprint: Callable[[DataCondition, str], str | None],
) -> ComponentSpec:
    if spec.is_placeholder:
        role = spec.params["role"]
        return ComponentSpec.constant(
            getattr(condition, role),
            key={"condition": condition.condition_id, "role": role, "data": fingerprint(condition, role)},
        )
    if not spec.deps:
        return spec
    return dataclasses.replace(
        spec, deps={name: _bind(dep, condition, fingerprint) for name, dep in spec.deps.items()}
    )


__all__ = [
    "ComponentLookup",
    "ComponentSpec",
    "GraphResolver",
    "MergePool",
    "Resolver",
    "holdout_data",
    "train_data",
]
