"""
SQLite storage. One file, one connection, no ORM.

Tables:
- items: crawled content, unique per (channel, item id)
- channel_state: the last new_since returned for each channel
- crawl_runs: one row per crawl, for stats
"""

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from models import ContentItem, CrawlReport, SingleEntity, format_created_at


class Storage:
    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._migrate()

    def _migrate(self):
        """Create tables if they don't exist. No migration framework needed."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS items (
                channel TEXT NOT NULL,
                item_id TEXT NOT NULL,
                type TEXT NOT NULL,
                description TEXT NOT NULL,
                link TEXT NOT NULL,
                source TEXT NOT NULL DEFAULT '',
                thumb TEXT NOT NULL DEFAULT '',
                author TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                created_at_orig TEXT,
                crawled_at TEXT NOT NULL,
                PRIMARY KEY (channel, item_id)
            );

            CREATE INDEX IF NOT EXISTS idx_items_created
                ON items(created_at);
            CREATE INDEX IF NOT EXISTS idx_items_type
                ON items(type);

            CREATE TABLE IF NOT EXISTS channel_state (
                channel TEXT PRIMARY KEY,
                new_since TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS crawl_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                queries TEXT NOT NULL,
                item_count INTEGER NOT NULL,
                channels TEXT NOT NULL,
                failed TEXT NOT NULL DEFAULT '[]',
                started_at TEXT NOT NULL,
                duration_ms INTEGER NOT NULL
            );
        """)
        self._conn.commit()

    def insert_item(self, channel: str, item: ContentItem) -> bool:
        """
        Insert an item. Returns True if new, False if duplicate.
        Duplicates are silently ignored.
        """
        with self._lock:
            cur = self._conn.execute(
                """INSERT OR IGNORE INTO items
                   (channel, item_id, type, description, link, source, thumb,
                    author, created_at, created_at_orig, crawled_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    channel,
                    item.id,
                    item.type.value,
                    item.description,
                    item.link,
                    item.source,
                    item.thumb,
                    json.dumps(item.author.to_dict()),
                    format_created_at(item.created_at),
                    item.created_at_orig,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            self._conn.commit()
            return cur.rowcount > 0

    def insert_items(self, channel: str, items: list[ContentItem]) -> int:
        """Insert multiple items. Returns count of new items."""
        new_count = 0
        for item in items:
            if self.insert_item(channel, item):
                new_count += 1
        return new_count

    def get_channel_state(self, channel: str) -> str | None:
        """The new_since a channel returned last time, if any."""
        row = self._conn.execute(
            "SELECT new_since FROM channel_state WHERE channel = ?", (channel,)
        ).fetchone()
        return row[0] if row else None

    def set_channel_state(self, channel: str, new_since: str):
        with self._lock:
            self._conn.execute(
                """INSERT INTO channel_state (channel, new_since, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(channel)
                   DO UPDATE SET new_since = excluded.new_since, updated_at = excluded.updated_at""",
                (channel, new_since, datetime.now(timezone.utc).isoformat()),
            )
            self._conn.commit()

    def get_channel_states(self) -> dict[str, dict]:
        return {
            row["channel"]: {"new_since": row["new_since"], "updated_at": row["updated_at"]}
            for row in self._conn.execute(
                "SELECT channel, new_since, updated_at FROM channel_state ORDER BY channel"
            )
        }

    def save_report(self, report: CrawlReport) -> tuple[int, int]:
        """
        Store every listed item, every channel's new cursor, and the run itself.
        Profile lookups (`user:` results) are not stored.
        Returns (run_id, new_item_count).
        """
        new_count = 0
        for name, channel_report in report.channels.items():
            if not isinstance(channel_report.data, SingleEntity):
                new_count += self.insert_items(name, channel_report.data)
            merged = merge_since(self.get_channel_state(name), channel_report.new_since)
            self.set_channel_state(name, merged)

        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO crawl_runs (queries, item_count, channels, failed, started_at, duration_ms) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    json.dumps(report.queries),
                    report.item_count,
                    json.dumps(list(report.channels)),
                    json.dumps(report.failed),
                    report.started_at.isoformat(),
                    report.duration_ms,
                ),
            )
            self._conn.commit()
        return cur.lastrowid, new_count

    def get_stats(self) -> dict:
        """Basic stats for debugging."""
        total = self._conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
        by_channel = {}
        for row in self._conn.execute(
            "SELECT channel, COUNT(*) as cnt FROM items GROUP BY channel ORDER BY channel"
        ):
            by_channel[row[0]] = row[1]
        by_type = {}
        for row in self._conn.execute(
            "SELECT type, COUNT(*) as cnt FROM items GROUP BY type ORDER BY type"
        ):
            by_type[row[0]] = row[1]
        runs = self._conn.execute("SELECT COUNT(*) FROM crawl_runs").fetchone()[0]
        return {
            "total_items": total,
            "by_channel": by_channel,
            "by_type": by_type,
            "crawl_runs": runs,
        }

    def close(self):
        self._conn.close()


def merge_since(stored: str | None, new_since: str) -> str:
    """
    Lay a crawl's {query: marker} map over the stored one, so queries that
    were not part of this crawl keep their markers.
    """
    try:
        markers = json.loads(stored) if stored else {}
    except ValueError:
        markers = {}
    if not isinstance(markers, dict):
        markers = {}
    markers.update(json.loads(new_since))
    return json.dumps(markers)


def query_items(
    conn: sqlite3.Connection,
    channel: str | None = None,
    content_type: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """
    Stored items, newest first. Works on any connection with
    row_factory = sqlite3.Row, read-only ones included.
    Returns (list_of_dicts, total_count).
    """
    conditions = ["1 = 1"]
    params: list = []

    if channel:
        conditions.append("channel = ?")
        params.append(channel)
    if content_type:
        conditions.append("type = ?")
        params.append(content_type)

    where = " AND ".join(conditions)
    total = conn.execute(
        f"SELECT COUNT(*) FROM items WHERE {where}", params
    ).fetchone()[0]

    rows = conn.execute(
        f"SELECT * FROM items WHERE {where} "
        f"ORDER BY created_at DESC, item_id LIMIT ? OFFSET ?",
        params + [limit, offset],
    ).fetchall()
    return [row_to_dict(r) for r in rows], total


def row_to_dict(row: sqlite3.Row) -> dict:
    """Wire form of a stored item, plus the channel it came from."""
    data = {
        "channel": row["channel"],
        "id": row["item_id"],
        "created_at": row["created_at"],
        "description": row["description"],
        "link": row["link"],
        "type": row["type"],
        "source": row["source"],
        "thumb": row["thumb"],
        "author": json.loads(row["author"]),
    }
    if row["created_at_orig"] is not None:
        data["created_at_orig"] = row["created_at_orig"]
    return data
