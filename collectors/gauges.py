"""
River gauge collector. USGS Water Services instantaneous values,
parameter 00065 (gage height, feet). Keeps the latest fresh reading per site.
"""

import logging
from datetime import datetime, timedelta, timezone

from collectors.base import Collector, CollectorError
from models import GaugeReading

log = logging.getLogger(__name__)

GAGE_HEIGHT_PARAM = "00065"


def parse_usgs_response(
    data: dict,
    max_age: timedelta = timedelta(hours=3),
    now: datetime | None = None,
) -> list[GaugeReading]:
    """
    Walk value.timeSeries and keep one reading per site.

    Skipped: sites without a code or location, (0, 0) locations, missing or
    non-numeric values, unparsable times, and readings older than `max_age`.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - max_age
    readings = []

    for series in (data.get("value") or {}).get("timeSeries") or []:
        source_info = series.get("sourceInfo") or {}
        site_codes = source_info.get("siteCode") or []
        site_code = site_codes[0].get("value") if site_codes else None
        geo = (source_info.get("geoLocation") or {}).get("geogLocation")
        if not site_code or not geo:
            continue

        latitude = geo.get("latitude") or 0
        longitude = geo.get("longitude") or 0
        if latitude == 0 and longitude == 0:
            continue

        values = ((series.get("values") or [{}])[0].get("value")) or []
        if not values:
            continue
        latest = values[-1]
        if not latest.get("value") or not latest.get("dateTime"):
            continue

        try:
            gage_height = float(latest["value"])
            observed_at = datetime.fromisoformat(latest["dateTime"].replace("Z", "+00:00"))
        except ValueError:
            continue

        if observed_at.tzinfo is None:
            observed_at = observed_at.replace(tzinfo=timezone.utc)
        if observed_at < cutoff:
            continue

        readings.append(GaugeReading(
            site_code=site_code,
            site_name=source_info.get("siteName") or "Unknown",
            latitude=latitude,
            longitude=longitude,
            observed_at=observed_at,
            gage_height_ft=gage_height,
        ))

    return readings


class GaugesCollector(Collector):
    def name(self) -> str:
        return "gauges"

    async def collect(self) -> int:
        resp = await self._get(
            self.config.usgs_api,
            "USGS API",
            params={
                "format": "json",
                "stateCd": self.config.state,
                "parameterCd": GAGE_HEIGHT_PARAM,
                "siteStatus": "active",
            },
            headers={"Accept": "application/json"},
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise CollectorError(f"USGS API returned invalid JSON: {e}") from e

        readings = parse_usgs_response(
            data, max_age=timedelta(hours=self.config.gauge_max_age_hours)
        )
        if not readings:
            log.info("No gauge data from USGS")
            return 0

        new_count = self.storage.insert_gauge_readings(readings)
        log.debug(f"Stored {new_count} new of {len(readings)} gauge readings")
        return len(readings)
