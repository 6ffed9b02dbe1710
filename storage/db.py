"""
SQLite storage. One file, one connection, no ORM.

Tables:
- weather_observations: NOAA station readings, unique per station + time
- weather_alerts: NOAA alerts with first_seen / last_seen tracking
- traffic_incidents: VT 511 incidents with lifecycle (resolved_at)
- river_gauges: USGS gage heights, unique per site + time
- collection_runs: one row per orchestrator run
- collection_sources: per-source outcome of each run

The connection is only used from the thread that created it. Collectors
fetch in worker threads but write here from the event loop thread.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from models import (
    CollectionResult,
    GaugeReading,
    TrafficIncident,
    WeatherAlert,
    WeatherObservation,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Storage:
    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._migrate()

    def _migrate(self):
        """Create tables if they don't exist. No migration framework needed."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS weather_observations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                station_id TEXT NOT NULL,
                station_name TEXT NOT NULL,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                observed_at TEXT NOT NULL,
                temperature_f INTEGER,
                humidity REAL,
                wind_speed_mph INTEGER,
                wind_direction TEXT,
                pressure_mb INTEGER,
                description TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                UNIQUE (station_id, observed_at)
            );

            CREATE INDEX IF NOT EXISTS idx_weather_obs_observed_at
                ON weather_observations(observed_at);

            CREATE TABLE IF NOT EXISTS weather_alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                noaa_alert_id TEXT NOT NULL UNIQUE,
                event_type TEXT NOT NULL,
                severity TEXT NOT NULL,
                certainty TEXT NOT NULL,
                urgency TEXT NOT NULL,
                headline TEXT,
                description TEXT,
                instruction TEXT,
                area_desc TEXT,
                affected_zones TEXT NOT NULL DEFAULT '[]',
                geometry TEXT,
                effective_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                first_seen_at TEXT NOT NULL,
                last_seen_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_event_type
                ON weather_alerts(event_type);
            CREATE INDEX IF NOT EXISTS idx_alerts_expires
                ON weather_alerts(expires_at);

            CREATE TABLE IF NOT EXISTS traffic_incidents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source_id TEXT NOT NULL UNIQUE,
                incident_type TEXT NOT NULL,
                severity TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                road_name TEXT,
                affected_lanes TEXT,
                started_at TEXT,
                source TEXT NOT NULL,
                first_seen_at TEXT NOT NULL,
                last_seen_at TEXT NOT NULL,
                resolved_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_incidents_resolved
                ON traffic_incidents(resolved_at);

            CREATE TABLE IF NOT EXISTS river_gauges (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                site_code TEXT NOT NULL,
                site_name TEXT NOT NULL,
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                observed_at TEXT NOT NULL,
                gage_height_ft REAL NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                UNIQUE (site_code, observed_at)
            );

            CREATE TABLE IF NOT EXISTS collection_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                collected_at TEXT NOT NULL,
                errors TEXT NOT NULL DEFAULT '[]'
            );

            CREATE INDEX IF NOT EXISTS idx_runs_collected
                ON collection_runs(collected_at);

            CREATE TABLE IF NOT EXISTS collection_sources (
                run_id INTEGER NOT NULL,
                source TEXT NOT NULL,
                status TEXT NOT NULL,
                value INTEGER,
                error TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (run_id, source),
                FOREIGN KEY (run_id) REFERENCES collection_runs(id)
            );
        """)
        self._conn.commit()

    # ── Collector sinks ──

    def insert_observations(self, observations: list[WeatherObservation]) -> int:
        """Insert observations, ignoring station + time duplicates. Returns count of new rows."""
        before = self._conn.total_changes
        self._conn.executemany(
            """INSERT OR IGNORE INTO weather_observations
               (station_id, station_name, latitude, longitude, observed_at,
                temperature_f, humidity, wind_speed_mph, wind_direction,
                pressure_mb, description)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    o.station_id, o.station_name, o.latitude, o.longitude,
                    o.observed_at.isoformat(), o.temperature_f, o.humidity,
                    o.wind_speed_mph, o.wind_direction, o.pressure_mb, o.description,
                )
                for o in observations
            ],
        )
        self._conn.commit()
        return self._conn.total_changes - before

    def upsert_alerts(self, alerts: list[WeatherAlert]) -> int:
        """
        Insert new alerts, bump last_seen_at on ones we already have.
        Returns the number of alerts processed.
        """
        now = _now()
        for alert in alerts:
            self._conn.execute(
                """INSERT INTO weather_alerts
                   (noaa_alert_id, event_type, severity, certainty, urgency,
                    headline, description, instruction, area_desc,
                    affected_zones, geometry, effective_at, expires_at,
                    first_seen_at, last_seen_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(noaa_alert_id)
                   DO UPDATE SET last_seen_at = excluded.last_seen_at""",
                (
                    alert.noaa_alert_id, alert.event_type, alert.severity,
                    alert.certainty, alert.urgency, alert.headline,
                    alert.description, alert.instruction, alert.area_desc,
                    json.dumps(alert.affected_zones),
                    json.dumps(alert.geometry) if alert.geometry else None,
                    alert.effective_at.isoformat(), alert.expires_at.isoformat(),
                    now, now,
                ),
            )
        self._conn.commit()
        return len(alerts)

    def upsert_incidents(self, incidents: list[TrafficIncident]) -> int:
        """
        Insert new incidents, bump last_seen_at on known ones, and mark every
        open incident missing from this batch as resolved.
        Returns the number of incidents processed.
        """
        now = _now()
        for incident in incidents:
            self._conn.execute(
                """INSERT INTO traffic_incidents
                   (source_id, incident_type, severity, title, description,
                    latitude, longitude, road_name, affected_lanes, started_at,
                    source, first_seen_at, last_seen_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(source_id)
                   DO UPDATE SET last_seen_at = excluded.last_seen_at""",
                (
                    incident.source_id, incident.incident_type, incident.severity,
                    incident.title, incident.description, incident.latitude,
                    incident.longitude, incident.road_name, incident.affected_lanes,
                    _iso(incident.started_at), incident.source, now, now,
                ),
            )

        if incidents:
            placeholders = ", ".join("?" for _ in incidents)
            self._conn.execute(
                f"UPDATE traffic_incidents SET resolved_at = ? "
                f"WHERE resolved_at IS NULL AND source_id NOT IN ({placeholders})",
                [now] + [i.source_id for i in incidents],
            )

        self._conn.commit()
        return len(incidents)

    def insert_gauge_readings(self, readings: list[GaugeReading]) -> int:
        """Insert readings, ignoring site + time duplicates. Returns count of new rows."""
        before = self._conn.total_changes
        self._conn.executemany(
            """INSERT OR IGNORE INTO river_gauges
               (site_code, site_name, latitude, longitude, observed_at, gage_height_ft)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (
                    r.site_code, r.site_name, r.latitude, r.longitude,
                    r.observed_at.isoformat(), r.gage_height_ft,
                )
                for r in readings
            ],
        )
        self._conn.commit()
        return self._conn.total_changes - before

    # ── Collection runs ──

    def save_collection_run(self, result: CollectionResult) -> int:
        """Persist one orchestrator snapshot. Returns the run id."""
        cursor = self._conn.execute(
            "INSERT INTO collection_runs (collected_at, errors) VALUES (?, ?)",
            (result.timestamp.isoformat(), json.dumps(result.errors)),
        )
        run_id = cursor.lastrowid

        for name, outcome in result.outcomes.items():
            self._conn.execute(
                """INSERT INTO collection_sources
                   (run_id, source, status, value, error, attempts)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    run_id, name, outcome.status.value,
                    outcome.value if outcome.succeeded else None,
                    outcome.error, outcome.attempts,
                ),
            )

        self._conn.commit()
        return run_id

    def get_runs(self, limit: int = 20, offset: int = 0) -> list[dict]:
        """Most recent runs first, each with its per-source outcomes."""
        rows = self._conn.execute(
            "SELECT id, collected_at, errors FROM collection_runs "
            "ORDER BY collected_at DESC, id DESC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
        return [self._run_to_dict(row) for row in rows]

    def get_run(self, run_id: int) -> dict | None:
        row = self._conn.execute(
            "SELECT id, collected_at, errors FROM collection_runs WHERE id = ?",
            (run_id,),
        ).fetchone()
        return self._run_to_dict(row) if row else None

    def get_source_status(self) -> dict[str, dict]:
        """Latest outcome per source, with when it ran and when it last succeeded."""
        return source_status(self._conn)

    def get_stats(self) -> dict:
        """Basic stats for debugging."""
        return record_stats(self._conn)

    def _run_to_dict(self, row: sqlite3.Row) -> dict:
        return run_to_dict(self._conn, row)

    def close(self):
        self._conn.close()


# Shared by Storage and the read-only API connections.

def run_to_dict(conn: sqlite3.Connection, row: sqlite3.Row) -> dict:
    source_rows = conn.execute(
        "SELECT source, status, value, error, attempts "
        "FROM collection_sources WHERE run_id = ? ORDER BY rowid",
        (row["id"],),
    ).fetchall()
    return {
        "id": row["id"],
        "collected_at": row["collected_at"],
        "errors": json.loads(row["errors"]),
        "sources": {
            s["source"]: {
                "status": s["status"],
                "value": s["value"],
                "error": s["error"],
                "attempts": s["attempts"],
            }
            for s in source_rows
        },
    }


def source_status(conn: sqlite3.Connection) -> dict[str, dict]:
    status: dict[str, dict] = {}
    rows = conn.execute(
        "SELECT s.source, s.status, s.value, s.error, s.attempts, r.collected_at "
        "FROM collection_sources s JOIN collection_runs r ON s.run_id = r.id "
        "ORDER BY r.collected_at ASC, r.id ASC"
    ).fetchall()
    for row in rows:
        entry = status.setdefault(row["source"], {"last_success": None})
        entry.update({
            "last_run": row["collected_at"],
            "status": row["status"],
            "last_result": row["value"],
            "last_error": row["error"],
            "attempts": row["attempts"],
        })
        if row["status"] == "ok":
            entry["last_success"] = row["collected_at"]
    return status


def record_stats(conn: sqlite3.Connection) -> dict:
    counts = {}
    for table in ("weather_observations", "weather_alerts", "traffic_incidents", "river_gauges"):
        counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    open_incidents = conn.execute(
        "SELECT COUNT(*) FROM traffic_incidents WHERE resolved_at IS NULL"
    ).fetchone()[0]
    total_runs = conn.execute("SELECT COUNT(*) FROM collection_runs").fetchone()[0]
    latest = conn.execute("SELECT MAX(collected_at) FROM collection_runs").fetchone()[0]
    return {
        "records": counts,
        "open_incidents": open_incidents,
        "total_runs": total_runs,
        "latest_run": latest,
    }
