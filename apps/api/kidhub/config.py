"""Application configuration utilities."""
from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field

PLACEHOLDER_SUPABASE_URL = "https://placeholder-url.supabase.co"
PLACEHOLDER_SUPABASE_KEY = "placeholder-key"


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json and the environment."""

    supabase_url: str = Field(default=PLACEHOLDER_SUPABASE_URL)
    supabase_anon_key: str = Field(default=PLACEHOLDER_SUPABASE_KEY)
    state_dir: str = Field(default="./data/state")
    login_path: str = Field(default="/login")
    site_url: str = Field(default="http://localhost:5173")
    log_level: str = Field(default="INFO")
    phone_country_code: str = Field(default="359")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    @property
    def is_placeholder(self) -> bool:
        """True when no real Supabase project is configured (offline/demo mode)."""
        return self.supabase_url.rstrip("/") == PLACEHOLDER_SUPABASE_URL

    @property
    def resolved_state_dir(self) -> Path:
        """Return the absolute directory holding persisted client state."""
        return (Path(__file__).resolve().parents[1] / self.state_dir).resolve()


def _config_path() -> Path:
    return Path(__file__).resolve().parents[1] / "config.json"


def _env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def load_config() -> AppConfig:
    """Load config.json when present, then apply environment overrides."""

    contents: Dict[str, Any] = {}
    config_file = _config_path()
    if config_file.exists():
        contents = json.loads(config_file.read_text())

    overrides = {
        "supabase_url": _env("SUPABASE_URL", "VITE_SUPABASE_URL"),
        "supabase_anon_key": _env("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"),
        "state_dir": _env("KIDHUB_STATE_DIR"),
        "log_level": _env("KIDHUB_LOG_LEVEL", "VITE_APP_LOG_LEVEL"),
        "site_url": _env("KIDHUB_SITE_URL"),
    }
    contents.update({key: value for key, value in overrides.items() if value})
    return AppConfig(**contents)


@lru_cache
def get_config() -> AppConfig:
    return load_config()


def configure_logging(level: str | None = None) -> None:
    """Attach a single stream handler to the root logger."""

    root = logging.getLogger()
    if root.handlers:
        return
    level_name = (level or get_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
