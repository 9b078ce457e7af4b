"""
config.py

Runtime configuration for the Plot Build-Stage Tracker.

Settings are read from environment variables:

  PLOTS_STAGE_CATALOG   path to a JSON stage catalog (default: built-in catalog)
  PLOTS_LOG_LEVEL       logging level name (default: INFO)
  PLOTS_HOST            bind address for the API server (default: 127.0.0.1)
  PLOTS_PORT            port for the API server (default: 8000)
  PLOTS_RELOAD          "true" enables uvicorn auto-reload (default: false)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from catalog import load_catalog
from model import StageTemplate

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Process-wide settings loaded once at startup."""
    stage_catalog_path: Optional[Path]
    log_level: str
    host: str
    port: int
    reload: bool

    def stage_catalog(self) -> Tuple[StageTemplate, ...]:
        return load_catalog(self.stage_catalog_path)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from `env` (defaults to os.environ)."""
    env = os.environ if env is None else env
    catalog_path = env.get("PLOTS_STAGE_CATALOG", "").strip()
    try:
        port = int(env.get("PLOTS_PORT", "8000"))
    except ValueError as exc:
        raise ValueError(f"PLOTS_PORT must be an integer: {exc}") from exc
    return Settings(
        stage_catalog_path=Path(catalog_path) if catalog_path else None,
        log_level=env.get("PLOTS_LOG_LEVEL", "INFO").upper(),
        host=env.get("PLOTS_HOST", "127.0.0.1"),
        port=port,
        reload=env.get("PLOTS_RELOAD", "false").lower() == "true",
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
