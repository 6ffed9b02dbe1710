"""
Weather observations collector. Uses the NOAA api.weather.gov station list
plus the latest observation of every station.

Strategy:
- One request for the state's station list
- Latest observation per station, fetched concurrently
- Stations without a temperature or timestamp are skipped
- Units converted to what the UI shows: F, mph, cardinal wind, mb
"""

import asyncio
import logging
from datetime import datetime

import requests

from collectors.base import Collector, CollectorError
from models import WeatherObservation

log = logging.getLogger(__name__)

CARDINALS = [
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
]


def celsius_to_fahrenheit(celsius: float) -> int:
    return round(celsius * 9 / 5 + 32)


def degrees_to_cardinal(degrees: float) -> str:
    return CARDINALS[round(degrees / 22.5) % 16]


def _value(props: dict, key: str):
    """NOAA wraps measurements as {"value": x, "unitCode": ...}."""
    return (props.get(key) or {}).get("value")


def parse_observation(station: dict, observation: dict) -> WeatherObservation | None:
    """Build an observation from a station feature and its latest observation payload."""
    station_props = station.get("properties", {})
    props = observation.get("properties", {})

    temp_c = _value(props, "temperature")
    timestamp = props.get("timestamp")
    if temp_c is None or not timestamp:
        return None

    coords = (station.get("geometry") or {}).get("coordinates") or []
    if len(coords) < 2:
        return None

    try:
        observed_at = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None

    wind_ms = _value(props, "windSpeed")
    wind_deg = _value(props, "windDirection")
    pressure_pa = _value(props, "barometricPressure")

    return WeatherObservation(
        station_id=station_props.get("stationIdentifier", ""),
        station_name=station_props.get("name", ""),
        latitude=coords[1],
        longitude=coords[0],
        observed_at=observed_at,
        temperature_f=celsius_to_fahrenheit(temp_c),
        humidity=_value(props, "relativeHumidity"),
        wind_speed_mph=round(wind_ms * 2.237) if wind_ms is not None else None,
        wind_direction=degrees_to_cardinal(wind_deg) if wind_deg is not None else None,
        pressure_mb=round(pressure_pa / 100) if pressure_pa is not None else None,
        description=props.get("textDescription") or None,
    )


class WeatherCollector(Collector):
    def name(self) -> str:
        return "weather"

    async def collect(self) -> int:
        stations = await self._fetch_stations()
        if not stations:
            log.info("No stations returned from NOAA")
            return 0

        results = await asyncio.gather(*(self._fetch_observation(s) for s in stations))
        observations = [o for o in results if o is not None]

        if not observations:
            log.info("No valid observations to store")
            return 0

        new_count = self.storage.insert_observations(observations)
        log.debug(f"Stored {new_count} new of {len(observations)} observations")
        return len(observations)

    async def _fetch_stations(self) -> list[dict]:
        resp = await self._get(
            f"{self.config.noaa_api}/stations",
            "NOAA stations API",
            params={"state": self.config.state, "limit": self.config.station_limit},
            headers={"Accept": "application/geo+json"},
        )
        try:
            features = resp.json().get("features", [])
        except ValueError as e:
            raise CollectorError(f"NOAA stations API returned invalid JSON: {e}") from e
        return features[:self.config.station_limit]

    async def _fetch_observation(self, station: dict) -> WeatherObservation | None:
        """A single bad station never fails the batch."""
        station_id = station.get("properties", {}).get("stationIdentifier")
        if not station_id:
            return None
        try:
            resp = await self._get(
                f"{self.config.noaa_api}/stations/{station_id}/observations/latest",
                "NOAA observations API",
                headers={"Accept": "application/geo+json"},
            )
            return parse_observation(station, resp.json())
        except (requests.RequestException, CollectorError, ValueError) as e:
            log.debug(f"Skipping station {station_id}: {e}")
            return None
