"""Shared model-component cache with at-most-one build per key."""

from __future__ import annotations

import logging
import os
import pickle
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass
class _CacheEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    done: bool = False
    value: Any = None
    error: BaseException | None = None


class ComponentCache:
    """Memoize built components per (isolation group, build key).

    With ``enabled=False`` the cache is a pass-through and every call builds. With a
    ``cache_dir``, fresh builds are also pickled to disk under their build key, so later
    runs can load them instead of rebuilding. The disk store is only a cache: anything
    missing or unreadable there is rebuilt.
    """

    def __init__(self, cache_dir: Path | str | None = None, *, enabled: bool = True) -> None:
        self.cache_dir = Path(cache_dir).expanduser() if cache_dir is not None else None
        self.enabled = enabled
        self._entries: dict[tuple[Hashable, str], _CacheEntry] = {}
        self._lock = threading.Lock()

    def build_or_reuse(self, group_key: Hashable, build_key: str, builder: Callable[[], T]) -> T:
        if not self.enabled:
            return builder()
        entry = self._entry(group_key, build_key)
        with entry.lock:
            if entry.done:
                if entry.error is not None:
                    raise entry.error
                logger.debug("Reusing component %s in group %s.", build_key[:12], group_key)
                return entry.value
            value = self._load(build_key)
            if value is _MISSING:
                try:
                    value = builder()
                except BaseException as exc:
                    entry.error = exc
                    entry.done = True
                    raise
                self._store(build_key, value)
            entry.value = value
            entry.done = True
            return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(1 for entry in self._entries.values() if entry.done and entry.error is None)

    def _entry(self, group_key: Hashable, build_key: str) -> _CacheEntry:
        with self._lock:
            key = (group_key, build_key)
            entry = self._entries.get(key)
            if entry is None:
                entry = _CacheEntry()
                self._entries[key] = entry
            return entry

    def _path_for(self, build_key: str) -> Path | None:
        if self.cache_dir is None:
            return None
        return self.cache_dir / f"{build_key}.pkl"

    def _load(self, build_key: str) -> Any:
        path = self._path_for(build_key)
        if path is None or not path.exists():
            return _MISSING
        try:
            with open(path, "rb") as handle:
                value = pickle.load(handle)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Ignoring unreadable cached component %s: %s", path, exc)
            return _MISSING
        logger.debug("Loaded component %s from %s.", build_key[:12], path)
        return value

    def _store(self, build_key: str, value: Any) -> None:
        path = self._path_for(build_key)
        if path is None:
            return
        tmp_path = path.with_name(f".{path.name}.tmp-{uuid.uuid4().hex}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as handle:
                pickle.dump(value, handle, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(tmp_path, path)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not cache component %s on disk: %s", build_key[:12], exc)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()


__all__ = ["ComponentCache"]
