"""
Weather alerts collector. Active NOAA alerts for the configured state,
upserted so first_seen / last_seen track each alert's lifetime.
"""

import logging
from datetime import datetime

from collectors.base import Collector, CollectorError
from models import WeatherAlert

log = logging.getLogger(__name__)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_alerts(data: dict) -> list[WeatherAlert]:
    """Turn an /alerts/active GeoJSON payload into alerts. Malformed features are dropped."""
    alerts = []
    for feature in data.get("features", []):
        props = feature.get("properties") or {}
        alert_id = props.get("id")
        effective_at = _parse_time(props.get("effective"))
        expires_at = _parse_time(props.get("expires"))
        if not alert_id or not effective_at or not expires_at:
            continue

        geometry = feature.get("geometry")
        zones = props.get("affectedZones") or []

        alerts.append(WeatherAlert(
            noaa_alert_id=alert_id,
            event_type=props.get("event", "Unknown"),
            severity=props.get("severity", "Unknown"),
            certainty=props.get("certainty", "Unknown"),
            urgency=props.get("urgency", "Unknown"),
            effective_at=effective_at,
            expires_at=expires_at,
            headline=props.get("headline") or None,
            description=props.get("description") or None,
            instruction=props.get("instruction") or None,
            area_desc=props.get("areaDesc") or None,
            # zone URLs -> bare ids, e.g. ".../zones/forecast/VTZ001" -> "VTZ001"
            affected_zones=[z.rstrip("/").rsplit("/", 1)[-1] for z in zones],
            geometry=(
                {"type": geometry.get("type"), "coordinates": geometry.get("coordinates")}
                if geometry else None
            ),
        ))
    return alerts


class AlertsCollector(Collector):
    def name(self) -> str:
        return "alerts"

    async def collect(self) -> int:
        resp = await self._get(
            f"{self.config.noaa_api}/alerts/active",
            "NOAA alerts API",
            params={"area": self.config.state},
            headers={"Accept": "application/geo+json"},
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise CollectorError(f"NOAA alerts API returned invalid JSON: {e}") from e

        alerts = parse_alerts(data)
        if not alerts:
            log.info(f"No active alerts for {self.config.state}")
            return 0

        processed = self.storage.upsert_alerts(alerts)
        log.debug(f"Processed {processed} alerts")
        return processed
