"""
Canvas Configuration.

Controls the remote API endpoint and credentials, the polling cadence
shared by every poller, and the node footprint used by the placement
engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from flowcanvas.config.env_utils import read_env_defaults


@dataclass
class CanvasConfig:
    """Editor core settings."""

    api_base_url: str = "http://localhost:3000/api"
    api_token: str = ""
    request_timeout: float = 30.0
    poll_interval: float = 2.0

    # Node footprint and placement probing
    node_width: float = 160
    node_height: float = 80
    placement_step: float = 200
    placement_columns: int = 5
    placement_max_attempts: int = 50

    focus_query_param: str = "node"

    _ENV_MAP = {
        "api_base_url": "FLOWCANVAS_API_BASE_URL",
        "api_token": "FLOWCANVAS_API_TOKEN",
        "request_timeout": "FLOWCANVAS_REQUEST_TIMEOUT",
        "poll_interval": "FLOWCANVAS_POLL_INTERVAL",
    }

    @classmethod
    def get_default_instance(
        cls, environ: Optional[Dict[str, str]] = None,
    ) -> "CanvasConfig":
        defaults = read_env_defaults(cls._ENV_MAP, cls.__dataclass_fields__, environ)
        return cls(**defaults)

    @classmethod
    def get_config_name(cls) -> str:
        return "canvas"


# ── Singleton ──

_config_instance: Optional[CanvasConfig] = None


def get_canvas_config() -> CanvasConfig:
    """Return the global CanvasConfig singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = CanvasConfig.get_default_instance()
    return _config_instance
