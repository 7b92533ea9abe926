"""Kiosk runtime configuration loaded from YAML with CLI overrides."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from signage.io_utils import load_yaml

LOGGER = logging.getLogger("signage.config")


@dataclass
class KioskConfig:
    # Scheduling
    detection_interval_ms: float = 200.0
    display_fps: float = 30.0
    # Recognition
    match_threshold: float = 0.55
    registration_cooldown_ms: float = 3000.0
    # Aggregation / publishing
    category_window_ms: float = 2000.0
    channel: str = "dominantAgeCategory"
    state_file: Optional[str] = None
    # Inference
    model_name: str = "buffalo_l"
    det_size: Tuple[int, int] = (640, 640)
    det_thresh: float = 0.5
    providers: Optional[Tuple[str, ...]] = None
    # Video source
    camera_width: int = 640
    camera_height: int = 480
    mirror_display: bool = True
    # Identity store
    store_url: Optional[str] = None
    users_file: str = "data/users.json"
    store_timeout_s: Optional[float] = 10.0

    def validate(self) -> "KioskConfig":
        if self.detection_interval_ms <= 0:
            raise ValueError(f"detection_interval_ms must be positive, got {self.detection_interval_ms}")
        if self.display_fps <= 0:
            raise ValueError(f"display_fps must be positive, got {self.display_fps}")
        if self.category_window_ms <= 0:
            raise ValueError(f"category_window_ms must be positive, got {self.category_window_ms}")
        if self.registration_cooldown_ms < 0:
            raise ValueError(f"registration_cooldown_ms must be >= 0, got {self.registration_cooldown_ms}")
        if self.match_threshold < 0:
            raise ValueError(f"match_threshold must be >= 0, got {self.match_threshold}")
        return self


_FIELD_NAMES = {f.name for f in fields(KioskConfig)}


def config_from_mapping(data: Mapping[str, Any], base: Optional[KioskConfig] = None) -> KioskConfig:
    """Overlay known keys from ``data`` onto ``base`` (or the defaults)."""
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in _FIELD_NAMES:
            LOGGER.warning("Ignoring unknown config key %r", key)
            continue
        if key == "det_size" and value is not None:
            value = tuple(int(v) for v in value)
        elif key == "providers" and value is not None:
            value = tuple(str(v) for v in value)
        values[key] = value
    return replace(base or KioskConfig(), **values).validate()


def load_kiosk_config(path: Optional[Path], overrides: Optional[Mapping[str, Any]] = None) -> KioskConfig:
    """Load ``path`` (if it exists) and apply non-None CLI ``overrides`` on top."""
    config = KioskConfig()
    if path is not None:
        if path.exists():
            config = config_from_mapping(load_yaml(path), config)
        else:
            LOGGER.warning("Config file %s not found; using defaults", path)
    if overrides:
        config = config_from_mapping({k: v for k, v in overrides.items() if v is not None}, config)
    return config.validate()
