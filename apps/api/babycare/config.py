"""Routine engine settings read from config.json with environment overrides."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field

API_ROOT = Path(__file__).resolve().parents[1]

# environment variable -> config field; set values win over config.json
ENV_OVERRIDES: Dict[str, str] = {
    "BABYCARE_DATABASE_PATH": "database_path",
    "BABYCARE_OVERRIDE_STORE": "override_store",
    "BABYCARE_DEFAULT_LOCALE": "default_locale",
}


class AppConfig(BaseModel):
    database_path: str = Field(default="./data/babycare.db")
    default_first_wake_time: str = Field(default="07:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    default_locale: str = Field(default="en")
    override_retention_days: int = Field(default=7, ge=1, description="Days a past day override is kept")
    override_store: str = Field(default="sqlite", pattern=r"^(sqlite|supabase)$")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8081"],
    )

    @property
    def resolved_database_path(self) -> Path:
        path = Path(self.database_path)
        return path if path.is_absolute() else (API_ROOT / path).resolve()


def _config_path() -> Path:
    return API_ROOT / "config.json"


def load_config() -> AppConfig:
    config_file = _config_path()
    if not config_file.exists():
        raise FileNotFoundError(
            f"Missing {config_file}. Copy {config_file.with_name('config.example.json')} "
            "next to it and adjust the routine defaults."
        )

    contents: Dict[str, Any] = json.loads(config_file.read_text())
    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            contents[field_name] = value
    return AppConfig(**contents)


CONFIG = load_config()
