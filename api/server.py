"""
Read-only status API over the collector database.
Reads from the existing SQLite database. Never writes.

Run: python main.py serve
"""

import sqlite3
from pathlib import Path

from flask import Flask, jsonify, request

from storage.db import record_stats, run_to_dict, source_status


def _parse_int(value: str | None, default: int, name: str) -> tuple[int, str | None]:
    """Parse an integer query param. Returns (value, error_message)."""
    if value is None:
        return default, None
    try:
        return int(value), None
    except (ValueError, TypeError):
        return default, f"Invalid value for '{name}': expected integer, got '{value}'"


def create_app(db_path: Path):
    app = Flask(__name__)

    # ── CORS for development ──
    @app.after_request
    def add_cors(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
        return response

    def get_db():
        """Open a read-only connection."""
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    # ── API Routes ──

    @app.route("/api/health")
    def health():
        conn = get_db()
        try:
            sources = source_status(conn)
            latest = conn.execute(
                "SELECT MAX(collected_at) AS latest FROM collection_runs"
            ).fetchone()["latest"]
        finally:
            conn.close()

        failing = [name for name, s in sources.items() if s["status"] != "ok"]
        return jsonify({
            "status": "degraded" if failing else "ok",
            "last_run": latest,
            "failing": failing,
            "collectors": sources,
        })

    @app.route("/api/runs")
    def list_runs():
        limit, err = _parse_int(request.args.get("limit"), 20, "limit")
        if err:
            return jsonify({"error": err}), 400
        offset, err = _parse_int(request.args.get("offset"), 0, "offset")
        if err:
            return jsonify({"error": err}), 400
        if limit < 1 or offset < 0:
            return jsonify({"error": "'limit' must be >= 1 and 'offset' >= 0"}), 400
        limit = min(limit, 200)

        conn = get_db()
        try:
            total = conn.execute("SELECT COUNT(*) AS cnt FROM collection_runs").fetchone()["cnt"]
            rows = conn.execute(
                "SELECT id, collected_at, errors FROM collection_runs "
                "ORDER BY collected_at DESC, id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
            runs = [run_to_dict(conn, row) for row in rows]
        finally:
            conn.close()

        return jsonify({"runs": runs, "total": total, "limit": limit, "offset": offset})

    @app.route("/api/runs/<int:run_id>")
    def get_run(run_id):
        conn = get_db()
        try:
            row = conn.execute(
                "SELECT id, collected_at, errors FROM collection_runs WHERE id = ?",
                (run_id,),
            ).fetchone()
            if not row:
                return jsonify({"error": "Run not found"}), 404
            return jsonify(run_to_dict(conn, row))
        finally:
            conn.close()

    @app.route("/api/stats")
    def get_stats():
        conn = get_db()
        try:
            return jsonify(record_stats(conn))
        finally:
            conn.close()

    @app.route("/")
    def index():
        return jsonify({
            "message": "liveview-collector API",
            "endpoints": [
                "/api/health",
                "/api/runs",
                "/api/runs/<id>",
                "/api/stats",
            ],
        })

    return app
