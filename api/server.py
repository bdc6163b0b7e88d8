"""
Read-only API server over the crawl database.
Reads from the existing SQLite database. Never writes.

Run: python main.py serve
"""

import json
import sqlite3
from pathlib import Path

from flask import Flask, jsonify, request

from models import ContentType
from storage.db import query_items


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

    @app.route("/api/items")
    def list_items():
        channel = request.args.get("channel")
        content_type = request.args.get("type")
        limit, limit_error = _parse_int(request.args.get("limit"), 50, "limit")
        offset, offset_error = _parse_int(request.args.get("offset"), 0, "offset")

        errors = [e for e in (limit_error, offset_error) if e]
        if content_type and content_type not in {t.value for t in ContentType}:
            errors.append(f"Invalid value for 'type': expected image, video or text, got '{content_type}'")
        if errors:
            return jsonify({"error": "; ".join(errors)}), 400

        limit = max(1, min(limit, 200))
        offset = max(0, offset)

        conn = get_db()
        try:
            items, total = query_items(conn, channel, content_type, limit, offset)
            return jsonify({
                "items": items,
                "total": total,
                "limit": limit,
                "offset": offset,
            })
        finally:
            conn.close()

    @app.route("/api/channels")
    def list_channels():
        conn = get_db()
        try:
            counts = {
                row["channel"]: row["cnt"]
                for row in conn.execute(
                    "SELECT channel, COUNT(*) as cnt FROM items GROUP BY channel"
                )
            }
            channels = []
            for row in conn.execute(
                "SELECT channel, new_since, updated_at FROM channel_state ORDER BY channel"
            ):
                channels.append({
                    "channel": row["channel"],
                    "new_since": json.loads(row["new_since"]),
                    "updated_at": row["updated_at"],
                    "item_count": counts.get(row["channel"], 0),
                })
            return jsonify({"channels": channels})
        finally:
            conn.close()

    @app.route("/api/stats")
    def get_stats():
        conn = get_db()
        try:
            total_items = conn.execute("SELECT COUNT(*) as cnt FROM items").fetchone()["cnt"]

            by_channel = {}
            for row in conn.execute(
                "SELECT channel, COUNT(*) as cnt FROM items GROUP BY channel"
            ):
                by_channel[row["channel"]] = row["cnt"]

            by_type = {}
            for row in conn.execute(
                "SELECT type, COUNT(*) as cnt FROM items GROUP BY type"
            ):
                by_type[row["type"]] = row["cnt"]

            last_run = conn.execute(
                "SELECT started_at, duration_ms, item_count, failed "
                "FROM crawl_runs ORDER BY id DESC LIMIT 1"
            ).fetchone()

            return jsonify({
                "total_items": total_items,
                "by_channel": by_channel,
                "by_type": by_type,
                "last_crawl": {
                    "started_at": last_run["started_at"],
                    "duration_ms": last_run["duration_ms"],
                    "item_count": last_run["item_count"],
                    "failed": json.loads(last_run["failed"]),
                } if last_run else None,
            })
        finally:
            conn.close()

    @app.route("/")
    def index():
        return jsonify({
            "message": "social-crawler API",
            "endpoints": [
                "/api/items",
                "/api/channels",
                "/api/stats",
            ],
        })

    return app
