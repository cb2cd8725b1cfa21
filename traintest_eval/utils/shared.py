"""Shared helper utilities for the evaluation engine."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Callable

from rich.logging import RichHandler

_LOGGING_INITIALIZED = False


def compute_checksum(payload: Any, *, default: Callable[[Any], Any] = str) -> str:
    """Compute a deterministic SHA256 checksum for arbitrary JSON-like payloads.

    Uses json.dumps with sorted keys and compact separators; values json cannot encode go
    through ``default`` (``str`` unless given), which may raise ``TypeError`` to reject them.
    """
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=default).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def qualified_name(obj: Any) -> str:
    """Return ``module.qualname`` for a callable, or its repr when it has neither."""
    module = getattr(obj, "__module__", None)
    qualname = getattr(obj, "__qualname__", None)
    if module and qualname:
        return f"{module}.{qualname}"
    return repr(obj)


def ensure_root_logging(level: str) -> None:
    """Configure root logging once while allowing level updates."""
    global _LOGGING_INITIALIZED
    root_logger = logging.getLogger()
    if not _LOGGING_INITIALIZED:
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.setLevel(level)
        root_logger.addHandler(handler)
        root_logger.setLevel(level)
        _LOGGING_INITIALIZED = True
    else:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)


__all__ = ["compute_checksum", "ensure_root_logging", "qualified_name"]
