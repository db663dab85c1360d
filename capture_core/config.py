"""
Capture settings per flow: polling cadence, stable duration, detector thresholds.

Detector thresholds are opaque here; they are merged over the detector's
default_settings() and handed to detector.init().
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from capture_core.stability import required_successes


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class FlowSettings:
    detector_kind: str
    interval_ms: float
    stable_duration_s: float = 0.0
    auto_capture: bool = False
    detector: dict[str, Any] = field(default_factory=dict)

    @property
    def required_successes(self) -> int:
        return required_successes(self.stable_duration_s, self.interval_ms)


@dataclass(frozen=True)
class CaptureSettings:
    selfie: FlowSettings = field(
        default_factory=lambda: FlowSettings(
            detector_kind="face", interval_ms=250, stable_duration_s=3.0, auto_capture=True
        )
    )
    # Document detection is heavier, so it polls less often
    document: FlowSettings = field(
        default_factory=lambda: FlowSettings(detector_kind="document", interval_ms=500)
    )

    def flow(self, name: str) -> FlowSettings:
        if name not in _FLOW_NAMES:
            raise ConfigError(f"Unknown flow: {name!r}. Known: {sorted(_FLOW_NAMES)}")
        return getattr(self, name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaptureSettings:
        settings = cls()
        for name, overrides in data.items():
            if name not in _FLOW_NAMES:
                raise ConfigError(f"Unknown flow: {name!r}")
            if not isinstance(overrides, dict):
                raise ConfigError(f"Flow {name!r} must be an object")
            settings = replace(settings, **{name: _merge_flow(getattr(settings, name), overrides)})
        return settings


_FLOW_NAMES = {f.name for f in fields(CaptureSettings)}
_FLOW_KEYS = {f.name for f in fields(FlowSettings)}


def _merge_flow(base: FlowSettings, overrides: dict[str, Any]) -> FlowSettings:
    unknown = set(overrides) - _FLOW_KEYS
    if unknown:
        raise ConfigError(f"Unknown flow settings: {sorted(unknown)}")
    values = dict(overrides)
    if "detector" in values:
        if not isinstance(values["detector"], dict):
            raise ConfigError("'detector' must be an object")
        values["detector"] = {**base.detector, **values["detector"]}
    merged = replace(base, **values)
    if not isinstance(merged.interval_ms, (int, float)) or merged.interval_ms <= 0:
        raise ConfigError(f"interval_ms must be a positive number, got {merged.interval_ms!r}")
    if not isinstance(merged.stable_duration_s, (int, float)) or merged.stable_duration_s < 0:
        raise ConfigError(
            f"stable_duration_s must be a non-negative number, got {merged.stable_duration_s!r}"
        )
    return merged


def load_settings(path: str | Path | None = None) -> CaptureSettings:
    """Defaults, overridden by a JSON file when one is given."""
    if path is None:
        return CaptureSettings()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read settings from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Settings file must contain a JSON object")
    return CaptureSettings.from_dict(data)
