"""Load experiment settings from YAML or JSON files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from omegaconf import OmegaConf
from pydantic import ValidationError

from traintest_eval.errors import ConfigurationError
from traintest_eval.experiment import ExperimentSettings

_PATH_FIELDS = ("cache_dir", "output_file", "user_output_file")


def load_experiment_settings(path: Path | str) -> ExperimentSettings:
    """Read settings from ``path``; relative paths inside resolve against its directory."""
    resolved = Path(path).expanduser().resolve()
    payload = _load_mapping(resolved)
    try:
        settings = ExperimentSettings(**payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid experiment settings: {resolved}") from exc
    base_dir = resolved.parent
    updates: dict[str, Path] = {}
    for name in _PATH_FIELDS:
        value = getattr(settings, name)
        if value is not None and not value.is_absolute():
            updates[name] = (base_dir / value).resolve()
    if updates:
        settings = settings.model_copy(update=updates)
    return settings


def _load_mapping(path: Path) -> Mapping[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config not found: {path}")
    if path.suffix not in {".yaml", ".yml", ".json"}:
        raise ConfigurationError(f"Unsupported config format: {path}")
    try:
        data = OmegaConf.to_container(OmegaConf.load(path), resolve=True)
    except Exception as exc:  # pragma: no cover - OmegaConf error types vary
        raise ConfigurationError(f"Failed to load config: {path}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config must be a mapping at top level: {path}")
    return data


__all__ = ["load_experiment_settings"]
