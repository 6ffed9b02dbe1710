"""
Core data types. No behavior, just shapes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Source(Enum):
    WEATHER = "weather"
    ALERTS = "alerts"
    TRAFFIC = "traffic"
    GAUGES = "gauges"


@dataclass
class WeatherObservation:
    """Latest observation from one NOAA station."""
    station_id: str
    station_name: str
    latitude: float
    longitude: float
    observed_at: datetime
    temperature_f: int | None = None
    humidity: float | None = None
    wind_speed_mph: int | None = None
    wind_direction: str | None = None   # 16-point cardinal, e.g. "NNE"
    pressure_mb: int | None = None
    description: str | None = None


@dataclass
class WeatherAlert:
    """An active NOAA alert."""
    noaa_alert_id: str
    event_type: str
    severity: str
    certainty: str
    urgency: str
    effective_at: datetime
    expires_at: datetime
    headline: str | None = None
    description: str | None = None
    instruction: str | None = None
    area_desc: str | None = None
    affected_zones: list[str] = field(default_factory=list)
    geometry: dict | None = None        # GeoJSON


@dataclass
class TrafficIncident:
    """A VT 511 incident."""
    source_id: str          # "vt511-<id>"
    incident_type: str      # HAZARD | CONSTRUCTION | ACCIDENT | CLOSURE
    severity: str           # MINOR | MODERATE | MAJOR
    title: str
    description: str
    latitude: float
    longitude: float
    road_name: str | None = None
    affected_lanes: str | None = None
    started_at: datetime | None = None
    source: str = "VT 511"


@dataclass
class GaugeReading:
    """Latest gage height for one USGS site."""
    site_code: str
    site_name: str
    latitude: float
    longitude: float
    observed_at: datetime
    gage_height_ft: float


class OutcomeStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Outcome:
    """
    Tagged result of one source's retry loop.

    A failed or cancelled outcome carries no value. `attempts` counts the
    calls actually made to the operation (0 when it never ran).
    """
    status: OutcomeStatus
    value: object = None
    error: str | None = None
    attempts: int = 0

    @classmethod
    def ok(cls, value, attempts: int) -> "Outcome":
        return cls(OutcomeStatus.OK, value=value, attempts=attempts)

    @classmethod
    def failed(cls, error: str, attempts: int) -> "Outcome":
        return cls(OutcomeStatus.FAILED, error=error, attempts=attempts)

    @classmethod
    def cancelled(cls, attempts: int) -> "Outcome":
        return cls(OutcomeStatus.CANCELLED, error="cancelled", attempts=attempts)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.OK

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "value": self.value,
            "error": self.error,
            "attempts": self.attempts,
        }


@dataclass
class CollectionResult:
    """
    Snapshot of one orchestrator run.

    `timestamp` is taken once, before any source starts. `outcomes` keeps
    the order the units were given in.
    """
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    outcomes: dict[str, Outcome] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def values(self) -> dict[str, object]:
        """Source name -> value, or None when the source produced nothing."""
        return {
            name: outcome.value if outcome.succeeded else None
            for name, outcome in self.outcomes.items()
        }

    def __getitem__(self, name: str):
        return self.values[name]

    @property
    def succeeded(self) -> list[str]:
        return [name for name, o in self.outcomes.items() if o.succeeded]

    def to_dict(self) -> dict:
        return {
            **self.values,
            "timestamp": self.timestamp.isoformat(),
            "errors": list(self.errors),
            "outcomes": {name: o.to_dict() for name, o in self.outcomes.items()},
        }

    def __repr__(self) -> str:
        ok = len(self.succeeded)
        return f"CollectionResult({self.timestamp.isoformat()}, {ok}/{len(self.outcomes)} ok)"
