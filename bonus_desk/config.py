from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bonus_engine.models import BonusConfig


class DisplayConfig(BaseModel):
    histogram_bins: int = Field(default=20, ge=1)
    currency_symbol: str = "€"
    # Composite scores above this are highlighted in the risk matrix.
    composite_alert_threshold: float = 10.0


class NarrativeConfig(BaseModel):
    model: str = "gemini-3-flash-preview"
    temperature: float = 1.0
    timeout_seconds: int = 30


class DeskSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BONUS_DESK_",
        extra="ignore",
        populate_by_name=True,
    )

    db_path: str = Field(default="bonus_desk.db", validation_alias="BONUS_DESK_DB_PATH")
    log_path: str = Field(default="logs/audit.log", validation_alias="BONUS_DESK_AUDIT_LOG")
    report_dir: str = Field(default="runs", validation_alias="BONUS_DESK_REPORT_DIR")
    workers: int = Field(default=1, ge=1, validation_alias="BONUS_DESK_WORKERS")
    gemini_api_key: Optional[str] = Field(default=None, validation_alias="GEMINI_API_KEY")

    bonus: BonusConfig = BonusConfig()
    display: DisplayConfig = DisplayConfig()
    narrative: NarrativeConfig = NarrativeConfig()


def load_config(path: Optional[str] = None) -> DeskSettings:
    settings = DeskSettings()
    if path:
        cfg_path = Path(path)
        if cfg_path.exists():
            data = yaml.safe_load(cfg_path.read_text()) or {}
            return DeskSettings(**data)
    return settings
