"""Scoped teardown for groups of output resources."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Protocol, TypeVar

from traintest_eval.errors import OutputError

logger = logging.getLogger(__name__)


class Closeable(Protocol):
    def close(self) -> None: ...


C = TypeVar("C", bound=Closeable)


class ResourceCloser:
    """Close registered resources exactly once, in reverse registration order.

    Used as a context manager. When the block raises, release failures are logged and
    attached to the in-flight exception as notes; that exception always propagates.
    When the block succeeds, the first release failure is raised as ``OutputError``.
    """

    def __init__(self) -> None:
        self._resources: list[Closeable] = []

    def register(self, resource: C) -> C:
        self._resources.append(resource)
        return resource

    def __enter__(self) -> ResourceCloser:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self.close()
            return False
        for resource, failure in self._release_all():
            logger.warning("Failed to close %r while handling %s: %s", resource, exc_type.__name__, failure)
            exc.add_note(f"suppressed error closing {resource!r}: {failure!r}")
        return False

    def close(self) -> None:
        failures = self._release_all()
        if not failures:
            return
        _, first = failures[0]
        for resource, failure in failures[1:]:
            logger.warning("Failed to close %r: %s", resource, failure)
            first.add_note(f"also failed closing {resource!r}: {failure!r}")
        if isinstance(first, OutputError):
            raise first
        raise OutputError("I/O error closing evaluation outputs") from first

    def _release_all(self) -> list[tuple[Closeable, Exception]]:
        failures: list[tuple[Closeable, Exception]] = []
        while self._resources:
            resource = self._resources.pop()
            try:
                resource.close()
            except Exception as exc:  # noqa: BLE001
                failures.append((resource, exc))
        return failures


__all__ = ["Closeable", "ResourceCloser"]
