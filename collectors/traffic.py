"""
Traffic incidents collector. VT 511 (New England Compass) C2C XML feed.

The feed's schema drifts between deployments, so parsing matches elements
by local name and ignores namespaces and nesting depth.
"""

import logging
import xml.etree.ElementTree as ET
from datetime import datetime

from collectors.base import Collector, CollectorError
from models import TrafficIncident

log = logging.getLogger(__name__)

# Raw-XML markers, checked in order
TYPE_MARKERS = [
    (("Construction", "RoadWork"), "CONSTRUCTION"),
    (("Accident",), "ACCIDENT"),
    (("BridgeOut", "Closure"), "CLOSURE"),
]


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find_text(elem: ET.Element, *names: str) -> str | None:
    """First non-empty text of any descendant whose local name matches, in `names` order."""
    wanted = [n.lower() for n in names]
    for name in wanted:
        for child in elem.iter():
            if child is elem:
                continue
            if _local(child.tag).lower() == name and child.text and child.text.strip():
                return child.text.strip()
    return None


def _incident_type(raw: str) -> str:
    for markers, incident_type in TYPE_MARKERS:
        if any(m in raw for m in markers):
            return incident_type
    return "HAZARD"


def _severity(value: str | None) -> str:
    if value:
        if value.lower() == "low":
            return "MINOR"
        if value.lower() == "high":
            return "MAJOR"
    return "MODERATE"


def _microdegrees(value: str | None) -> float:
    try:
        return float(value) / 1_000_000 if value else 0.0
    except ValueError:
        return 0.0


def parse_incident_xml(xml_text: str) -> list[TrafficIncident]:
    """
    Parse VT 511 incident XML.

    Coordinates come in microdegrees. Incidents without a usable location
    are skipped. Raises CollectorError if the document is not XML.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise CollectorError(f"VT 511 returned malformed XML: {e}") from e

    incidents = []
    for elem in root.iter():
        if _local(elem.tag).lower() != "incident":
            continue

        latitude = _microdegrees(_find_text(elem, "lat", "latitude"))
        longitude = _microdegrees(_find_text(elem, "lon", "longitude"))
        if latitude == 0 and longitude == 0:
            continue

        incident_id = _find_text(elem, "id") or elem.get("id")
        if not incident_id:
            continue

        raw = ET.tostring(elem, encoding="unicode")
        started_at = None
        start_time = _find_text(elem, "startTime")
        if start_time:
            try:
                started_at = datetime.fromisoformat(start_time.replace("Z", "+00:00"))
            except ValueError:
                started_at = None

        incidents.append(TrafficIncident(
            source_id=f"vt511-{incident_id}",
            incident_type=_incident_type(raw),
            severity=_severity(_find_text(elem, "severity")),
            title=_find_text(elem, "headline") or "Traffic Incident",
            description=_find_text(elem, "description") or "",
            latitude=latitude,
            longitude=longitude,
            road_name=_find_text(elem, "roadName", "road", "routeDesignator"),
            affected_lanes=_find_text(elem, "affectedLanes"),
            started_at=started_at,
        ))

    return incidents


class TrafficCollector(Collector):
    def name(self) -> str:
        return "traffic"

    async def collect(self) -> int:
        resp = await self._get(
            self.config.vt511_api,
            "VT 511 API",
            params={"networks": self.config.vt511_network, "dataTypes": "incidentData"},
        )
        incidents = parse_incident_xml(resp.text)

        if not incidents:
            # Empty feed: leave open incidents alone rather than resolving all of them
            log.info("No incidents from VT 511")
            return 0

        processed = self.storage.upsert_incidents(incidents)
        log.debug(f"Processed {processed} incidents")
        return processed
