# kirana/config.py
from __future__ import annotations

import os
from datetime import timedelta, timezone
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from kirana.db import DEFAULT_DB_PATH

load_dotenv()


class Settings(BaseModel):
    db_path: Path = DEFAULT_DB_PATH
    gemini_model: str = "gemini-2.5-flash"
    max_steps: int = Field(default=5, gt=0)
    utc_offset_minutes: int = Field(default=330, ge=-14 * 60, le=14 * 60)
    log_level: str = "INFO"

    @property
    def store_tz(self) -> timezone:
        return timezone(timedelta(minutes=self.utc_offset_minutes))


def load_settings() -> Settings:
    """Read settings from the environment (and .env, if present)."""
    values = {
        "db_path": os.getenv("KIRANA_DB_PATH"),
        "gemini_model": os.getenv("GEMINI_MODEL"),
        "max_steps": os.getenv("KIRANA_MAX_STEPS"),
        "utc_offset_minutes": os.getenv("KIRANA_UTC_OFFSET_MINUTES"),
        "log_level": os.getenv("KIRANA_LOG_LEVEL"),
    }
    return Settings(**{k: v for k, v in values.items() if v})
