"""
Configuration loading: config.yaml, then .env / environment overrides.
"""
import logging
import os
from datetime import time, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .core.models import ScanCategory

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def _default_triggers() -> Dict[ScanCategory, List[time]]:
    return {
        ScanCategory.FNO: [time(9, 17), time(9, 18), time(9, 19), time(9, 20), time(9, 21)],
        ScanCategory.LOSERS: [time(9, 31)],
    }


class ScheduleConfig(BaseModel):
    """Local trigger times per scan category."""
    utc_offset_minutes: int = Field(330, description="Local time offset from UTC (IST = +330)")
    timezone_label: str = Field("IST", description="Suffix for scan timestamps")
    triggers: Dict[ScanCategory, List[time]] = Field(default_factory=_default_triggers)
    run_days: List[int] = Field(
        default_factory=lambda: [0, 1, 2, 3, 4],
        description="Days to run (0=Monday, 6=Sunday)",
    )

    @field_validator("triggers", mode="before")
    @classmethod
    def _parse_times(cls, v):
        if not isinstance(v, dict):
            return v
        parsed = {}
        for category, times in v.items():
            parsed[category] = [_parse_hhmm(t) for t in times or []]
        return parsed

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(minutes=self.utc_offset_minutes))


def _parse_hhmm(value):
    """Parse "HH:MM" into a time.

    PyYAML reads an unquoted 15:00 as the base-60 int 900, so ints are
    taken as minutes since midnight.
    """
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        hour, minute = value.strip().split(":")
        return time(int(hour), int(minute))
    if isinstance(value, int) and not isinstance(value, bool):
        hour, minute = divmod(value, 60)
        return time(hour, minute)
    raise ValueError(f"Invalid trigger time {value!r}, expected HH:MM")


class NSEConfig(BaseModel):
    base_url: str = "https://www.nseindia.com"
    session_timeout_seconds: float = 15
    warmup_timeout_seconds: float = 5


class ScannerConfig(BaseModel):
    target_expiry: str = Field("27-Feb-2026", description="Contract expiry evaluated by the F&O scan")
    data_dir: str = Field("data", description="Directory holding the per-category result journals")
    gate_capacity: int = Field(10, ge=1, description="Max simultaneous per-symbol requests")
    symbol_timeout_seconds: float = Field(10, gt=0)
    history_capacity: int = Field(30, ge=1)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    nse: NSEConfig = Field(default_factory=NSEConfig)


ENV_OVERRIDES = {
    "FNO_TARGET_EXPIRY": "target_expiry",
    "FNO_DATA_DIR": "data_dir",
    "FNO_GATE_CAPACITY": "gate_capacity",
    "FNO_LOG_LEVEL": "log_level",
    "PORT": "port",
}


def load_config(path: Optional[str] = None) -> ScannerConfig:
    """Load configuration from YAML (if present) with environment overrides."""
    load_dotenv()
    config_path = Path(path or os.getenv("FNO_SCANNER_CONFIG", DEFAULT_CONFIG_PATH))

    data = {}
    if config_path.exists():
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    else:
        logger.info(f"No config file at {config_path}, using defaults")

    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name, "").strip()
        if value:
            data[key] = value

    return ScannerConfig.model_validate(data)
