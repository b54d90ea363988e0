"""Application configuration utilities."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class TimelineSettings(BaseModel):
    """Tunables for the timeline engine."""

    child_field: str = Field(default="childId", description="Field holding the child id on root collections")
    streak_lookback_days: int = Field(default=30, ge=1)
    week_window_days: int = Field(default=7, ge=1)
    recent_entries_limit: int = Field(default=5, ge=0)
    query_timeout_seconds: float = Field(default=15.0, gt=0)
    display_timezone: str = Field(default="UTC", description="IANA zone used for day boundaries and exports")


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json."""

    store_backend: Literal["memory", "firestore"] = Field(default="memory")
    firebase_project_id: Optional[str] = None
    firebase_credentials_path: Optional[str] = None
    log_level: str = Field(default="INFO")
    timeline: TimelineSettings = Field(default_factory=TimelineSettings)

    @property
    def resolved_credentials_path(self) -> Optional[Path]:
        """Return the absolute path for the service account file, if configured."""
        if not self.firebase_credentials_path:
            return None
        return (Path(__file__).resolve().parents[1] / self.firebase_credentials_path).resolve()


def _config_path() -> Path:
    override = os.getenv("CARELOG_CONFIG")
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).resolve().parents[1] / "config.json"


def load_config() -> AppConfig:
    """Load configuration from config.json, using defaults when it is absent."""

    config_file = _config_path()
    if not config_file.exists():
        logger.warning(
            "config file missing, using defaults",
            extra={"path": str(config_file)},
        )
        return AppConfig()

    contents: Dict[str, Any] = json.loads(config_file.read_text())
    return AppConfig(**contents)


CONFIG = load_config()
