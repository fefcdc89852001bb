"""Loading analysis thresholds from TOML files and command-line overrides."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from gc_insight.models import AnalysisThresholds


class ConfigError(ValueError):
    """The threshold configuration could not be loaded or failed validation."""


def load_thresholds(
    config_path: Path | None = None, overrides: dict[str, Any] | None = None
) -> AnalysisThresholds:
    """Build thresholds from defaults, an optional TOML file, then explicit overrides.

    The file may hold the keys at top level or under a ``[thresholds]``
    table. Overrides whose value is None are ignored.
    """
    values: dict[str, Any] = {}
    if config_path is not None:
        try:
            with config_path.open("rb") as f:
                document = tomllib.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config {config_path}: {e.strerror or e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
        values.update(document.get("thresholds", document))

    if overrides:
        values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return AnalysisThresholds.model_validate(values)
    except ValueError as e:
        raise ConfigError(str(e)) from e
