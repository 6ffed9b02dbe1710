"""
Configuration. All settings from env vars or a .env file.
No YAML. No TOML parsing. Just a dataclass with env-backed defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Auto-load .env file so you don't need `export $(grep ...)` every time
from dotenv import load_dotenv
load_dotenv()

from orchestrator.retry import RetryPolicy


@dataclass
class Config:
    # Storage
    db_path: Path = Path(os.environ.get("LIVEVIEW_DB_PATH", "data/liveview.db"))

    # Two-letter state code used by every upstream query
    state: str = os.environ.get("LIVEVIEW_STATE", "VT")

    # Sent in the User-Agent. NOAA asks for a contact address.
    contact_email: str = os.environ.get("CONTACT_EMAIL", "")
    user_agent: str = os.environ.get("LIVEVIEW_USER_AGENT", "VT-Liveview/1.0")
    http_timeout: int = int(os.environ.get("LIVEVIEW_HTTP_TIMEOUT", "30"))

    # ── Retry / orchestration ──
    max_retries: int = int(os.environ.get("LIVEVIEW_MAX_RETRIES", "3"))
    base_delay_ms: int = int(os.environ.get("LIVEVIEW_BASE_DELAY_MS", "1000"))
    # 0 disables the deadline
    deadline_seconds: float = float(os.environ.get("LIVEVIEW_DEADLINE_SECONDS", "0"))

    # ── NOAA (observations + alerts) ──
    noaa_api: str = os.environ.get("LIVEVIEW_NOAA_API", "https://api.weather.gov")
    station_limit: int = int(os.environ.get("LIVEVIEW_STATION_LIMIT", "50"))

    # ── VT 511 (traffic incidents) ──
    vt511_api: str = os.environ.get(
        "LIVEVIEW_VT511_API",
        "https://nec-por.ne-compass.com/NEC.XmlDataPortal/api/c2c",
    )
    vt511_network: str = os.environ.get("LIVEVIEW_VT511_NETWORK", "Vermont")

    # ── USGS (river gauges) ──
    usgs_api: str = os.environ.get("LIVEVIEW_USGS_API", "https://waterservices.usgs.gov/nwis/iv")
    gauge_max_age_hours: float = float(os.environ.get("LIVEVIEW_GAUGE_MAX_AGE_HOURS", "3"))

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, base_delay=self.base_delay_ms / 1000)

    @property
    def deadline(self) -> float | None:
        return self.deadline_seconds if self.deadline_seconds > 0 else None

    @property
    def user_agent_header(self) -> str:
        if self.contact_email:
            return f"{self.user_agent} ({self.contact_email})"
        return self.user_agent


def load_config() -> Config:
    return Config()
