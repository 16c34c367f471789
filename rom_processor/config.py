"""
Configuration for the ROM measurement pipeline.

Static settings are frozen dataclasses loaded once from an optional JSON
file. User-tunable stability settings live in StabilitySettings, which
may change while a session runs.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from rom_processor.errors import ConfigurationError
from rom_processor.guards import DRIFT_TOLERANCE, HIP_MIN_CONFIDENCE, MIN_HIP_SPAN, PELVIC_TILT_LIMIT
from rom_processor.smoothing import (
    BUFFER_CAPACITY, DEFAULT_STABILITY_FRAMES, DEFAULT_STABILITY_THRESHOLD, DEFAULT_WINDOW
)

logger = logging.getLogger(__name__)

STABILITY_THRESHOLD_RANGE = (1.0, 15.0)
STABILITY_FRAMES_RANGE = (3, 30)


@dataclass(frozen=True)
class MeasurementConfig:
    # Single confidence gate for the three joint landmarks.
    min_confidence: float = 0.7
    # Vertex drift allowed from the alignment anchor, in landmark units (pixels).
    drift_tolerance: float = DRIFT_TOLERANCE
    buffer_capacity: int = BUFFER_CAPACITY
    smoothing_window: int = DEFAULT_WINDOW
    auto_freeze: bool = True
    freeze_debounce_s: float = 0.5
    use_depth: bool = False
    pelvic_tilt_limit: float = PELVIC_TILT_LIMIT
    hip_min_confidence: float = HIP_MIN_CONFIDENCE
    min_hip_span: float = MIN_HIP_SPAN


@dataclass(frozen=True)
class PoseConfig:
    model_complexity: int = 1  # 0=lite, 1=full, 2=heavy
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5


@dataclass(frozen=True)
class OscConfig:
    host: str = "127.0.0.1"
    port: int = 57120


@dataclass(frozen=True)
class AppConfig:
    measurement: MeasurementConfig = field(default_factory=MeasurementConfig)
    pose: PoseConfig = field(default_factory=PoseConfig)
    osc: OscConfig = field(default_factory=OscConfig)


class StabilitySettings:
    """
    User-tunable stability parameters.

    Read by the session on every evaluation; a change applies from the
    next frame, not retroactively.
    """

    def __init__(self, threshold: float = DEFAULT_STABILITY_THRESHOLD,
                 frames: int = DEFAULT_STABILITY_FRAMES):
        self._threshold = DEFAULT_STABILITY_THRESHOLD
        self._frames = DEFAULT_STABILITY_FRAMES
        self.threshold = threshold
        self.frames = frames

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value: float):
        low, high = STABILITY_THRESHOLD_RANGE
        if not low <= float(value) <= high:
            raise ConfigurationError(f"stability threshold {value} outside {low}-{high} degrees")
        self._threshold = float(value)

    @property
    def frames(self) -> int:
        return self._frames

    @frames.setter
    def frames(self, value: int):
        low, high = STABILITY_FRAMES_RANGE
        if not low <= int(value) <= high:
            raise ConfigurationError(f"stability frames {value} outside {low}-{high}")
        self._frames = int(value)

    def __repr__(self) -> str:
        return f"StabilitySettings(threshold={self._threshold}, frames={self._frames})"


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
    cur: Any = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
    return cur if cur is not None else default


def _as_float(v: Any, default: float) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return float(default)


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    if v is None:
        return default
    return bool(v)


def parse_config(raw: Dict[str, Any]) -> AppConfig:
    """Build an AppConfig from a dict; missing keys keep their defaults."""
    m = MeasurementConfig()
    p = PoseConfig()
    o = OscConfig()

    measurement = MeasurementConfig(
        min_confidence=_as_float(_deep_get(raw, ["measurement", "min_confidence"]), m.min_confidence),
        drift_tolerance=_as_float(_deep_get(raw, ["measurement", "drift_tolerance"]), m.drift_tolerance),
        buffer_capacity=_as_int(_deep_get(raw, ["measurement", "buffer_capacity"]), m.buffer_capacity),
        smoothing_window=_as_int(_deep_get(raw, ["measurement", "smoothing_window"]), m.smoothing_window),
        auto_freeze=_as_bool(_deep_get(raw, ["measurement", "auto_freeze"]), m.auto_freeze),
        freeze_debounce_s=_as_float(_deep_get(raw, ["measurement", "freeze_debounce_s"]), m.freeze_debounce_s),
        use_depth=_as_bool(_deep_get(raw, ["measurement", "use_depth"]), m.use_depth),
        pelvic_tilt_limit=_as_float(_deep_get(raw, ["measurement", "pelvic_tilt_limit"]), m.pelvic_tilt_limit),
        hip_min_confidence=_as_float(_deep_get(raw, ["measurement", "hip_min_confidence"]), m.hip_min_confidence),
        min_hip_span=_as_float(_deep_get(raw, ["measurement", "min_hip_span"]), m.min_hip_span),
    )
    if not 0.0 <= measurement.min_confidence <= 1.0:
        raise ConfigurationError(f"min_confidence {measurement.min_confidence} outside 0-1")
    if measurement.buffer_capacity < 1 or measurement.smoothing_window < 1:
        raise ConfigurationError("buffer_capacity and smoothing_window must be >= 1")

    pose = PoseConfig(
        model_complexity=_as_int(_deep_get(raw, ["pose", "model_complexity"]), p.model_complexity),
        min_detection_confidence=_as_float(
            _deep_get(raw, ["pose", "min_detection_confidence"]), p.min_detection_confidence),
        min_tracking_confidence=_as_float(
            _deep_get(raw, ["pose", "min_tracking_confidence"]), p.min_tracking_confidence),
    )
    osc = OscConfig(
        host=str(_deep_get(raw, ["osc", "host"], o.host)),
        port=_as_int(_deep_get(raw, ["osc", "port"]), o.port),
    )
    return AppConfig(measurement=measurement, pose=pose, osc=osc)


def load_config(path: Optional[str | Path] = None) -> AppConfig:
    """
    Load configuration from a JSON file.

    Args:
        path: JSON file; None or a missing file gives the defaults

    Returns:
        AppConfig
    """
    if path is None:
        return AppConfig()
    p = Path(path).expanduser()
    if not p.exists():
        logger.info("Config file %s not found, using defaults", p)
        return AppConfig()
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid config file {p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {p} must contain a JSON object")
    return parse_config(raw)
