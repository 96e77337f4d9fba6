"""
Topology Dashboard Settings

Environment configuration for the visualizer. Loading and validation are
separate steps: ``from_env`` only parses, ``validate`` checks ranges.
"""

import os
from dataclasses import dataclass, replace
from typing import Dict, Tuple

from .models import Rect


class ConfigurationError(ValueError):
    """The visualizer cannot produce a sane display with this configuration."""


PERFORMANCE_PRESETS: Dict[str, Dict[str, object]] = {
    "high": {
        "max_visible_nodes": 20,
        "refresh_interval_ms": 10000,
        "viewport_culling_enabled": True,
    },
    "balanced": {
        "max_visible_nodes": 50,
        "refresh_interval_ms": 5000,
        "viewport_culling_enabled": True,
    },
    "quality": {
        "max_visible_nodes": 100,
        "refresh_interval_ms": 3000,
        "viewport_culling_enabled": False,
    },
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return default if value is None else int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return default if value is None else float(value)


@dataclass
class TopologyConfig:
    """Visualizer settings."""

    # Upstream dashboard API
    api_base_url: str = "http://localhost:5000"
    request_timeout_s: float = 5.0

    # Visualization
    max_visible_nodes: int = 50
    refresh_interval_ms: int = 5000
    viewport_culling_enabled: bool = True
    zoom_bounds: Tuple[float, float] = (0.3, 3.0)
    performance_mode: str = "balanced"
    canvas_width: int = 900
    canvas_height: int = 700

    # Server
    host: str = "127.0.0.1"
    port: int = 8050
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "TopologyConfig":
        """Load settings from environment variables.

        A performance mode named in the environment supplies the defaults for
        the budget, refresh interval and culling flag; explicit variables
        still override it.
        """
        mode = os.getenv("TOPOLOGY_PERFORMANCE_MODE", cls.performance_mode)
        preset = PERFORMANCE_PRESETS.get(mode, {})
        defaults = cls()
        return cls(
            api_base_url=os.getenv("TOPOLOGY_API_BASE_URL", defaults.api_base_url),
            request_timeout_s=_env_float(
                "TOPOLOGY_REQUEST_TIMEOUT_S", defaults.request_timeout_s
            ),
            max_visible_nodes=_env_int(
                "TOPOLOGY_MAX_VISIBLE_NODES",
                preset.get("max_visible_nodes", defaults.max_visible_nodes),
            ),
            refresh_interval_ms=_env_int(
                "TOPOLOGY_REFRESH_INTERVAL_MS",
                preset.get("refresh_interval_ms", defaults.refresh_interval_ms),
            ),
            viewport_culling_enabled=_env_bool(
                "TOPOLOGY_VIEWPORT_CULLING",
                preset.get(
                    "viewport_culling_enabled", defaults.viewport_culling_enabled
                ),
            ),
            zoom_bounds=(
                _env_float("TOPOLOGY_ZOOM_MIN", defaults.zoom_bounds[0]),
                _env_float("TOPOLOGY_ZOOM_MAX", defaults.zoom_bounds[1]),
            ),
            performance_mode=mode,
            canvas_width=_env_int("TOPOLOGY_CANVAS_WIDTH", defaults.canvas_width),
            canvas_height=_env_int("TOPOLOGY_CANVAS_HEIGHT", defaults.canvas_height),
            host=os.getenv("TOPOLOGY_HOST", defaults.host),
            port=_env_int("TOPOLOGY_PORT", defaults.port),
            debug=_env_bool("TOPOLOGY_DEBUG", defaults.debug),
            log_level=os.getenv("TOPOLOGY_LOG_LEVEL", defaults.log_level).upper(),
        )

    def validate(self) -> "TopologyConfig":
        """Raise ConfigurationError for settings that cannot render a display."""
        if self.max_visible_nodes < 1:
            raise ConfigurationError(
                f"max_visible_nodes must be >= 1, got {self.max_visible_nodes}"
            )
        if self.refresh_interval_ms <= 0:
            raise ConfigurationError(
                f"refresh_interval_ms must be > 0, got {self.refresh_interval_ms}"
            )
        zoom_min, zoom_max = self.zoom_bounds
        if not 0 < zoom_min <= zoom_max:
            raise ConfigurationError(
                f"zoom_bounds must satisfy 0 < min <= max, got {self.zoom_bounds}"
            )
        if self.canvas_width <= 0 or self.canvas_height <= 0:
            raise ConfigurationError(
                f"canvas size must be positive, got "
                f"{self.canvas_width}x{self.canvas_height}"
            )
        if self.performance_mode not in PERFORMANCE_PRESETS:
            raise ConfigurationError(
                f"unknown performance_mode {self.performance_mode!r}; "
                f"expected one of {sorted(PERFORMANCE_PRESETS)}"
            )
        return self

    def with_performance_mode(self, mode: str) -> "TopologyConfig":
        if mode not in PERFORMANCE_PRESETS:
            raise ConfigurationError(f"unknown performance_mode {mode!r}")
        return replace(self, performance_mode=mode, **PERFORMANCE_PRESETS[mode])

    @property
    def canvas(self) -> Rect:
        return Rect(0.0, 0.0, float(self.canvas_width), float(self.canvas_height))

    @property
    def source_intervals_ms(self) -> Dict[str, int]:
        """Polling interval per upstream source; features change slowly."""
        return {
            "router": self.refresh_interval_ms,
            "devices": self.refresh_interval_ms,
            "features": self.refresh_interval_ms * 2,
        }
