"""
Core data types. No network, no I/O, just shapes and their wire form.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class MediaFilter(Enum):
    """Which normalized item types a channel returns."""
    IMAGES = "images"
    VIDEOS = "videos"
    IMAGES_VIDEOS = "images+videos"
    TEXT = "text"
    ALL = "all"


class ContentType(Enum):
    IMAGE = "image"
    VIDEO = "video"
    TEXT = "text"


class QueryKind(Enum):
    SEARCH = "search"
    USER = "user"    # single-entity profile lookup, never paginated
    FROM = "from"    # timeline of one entity


def classify_query(query: str) -> tuple[QueryKind, str]:
    """Split a query term into its kind and the bare value."""
    if query.startswith("user:"):
        return QueryKind.USER, query[5:]
    if query.startswith("from:"):
        return QueryKind.FROM, query[5:]
    return QueryKind.SEARCH, query


def parse_timestamp(value) -> datetime | None:
    """
    Parse an ISO-8601 timestamp from a source or a cursor.
    Naive values are taken as UTC. Returns None if unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Cursor form: 2023-01-01T00:00:00.000000+00:00"""
    return value.isoformat(timespec="microseconds")


def format_created_at(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


@dataclass(frozen=True)
class Author:
    id: str
    avatar: str = ""
    fullname: str = ""
    username: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "avatar": self.avatar,
            "fullname": self.fullname,
            "username": self.username,
        }


@dataclass(frozen=True)
class ContentItem:
    """A single normalized post, image or video from one channel."""
    id: str
    created_at: datetime            # normalized, UTC
    description: str
    link: str
    type: ContentType
    author: Author
    source: str = ""                # media url, empty for text
    thumb: str = ""
    created_at_orig: str | None = None   # timestamp exactly as the source sent it
    raw: dict | None = None         # only when the caller asked for raw payloads

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "created_at": format_created_at(self.created_at),
            "description": self.description,
            "link": self.link,
            "type": self.type.value,
            "source": self.source,
            "thumb": self.thumb,
            "author": self.author.to_dict(),
        }
        if self.created_at_orig is not None:
            data["created_at_orig"] = self.created_at_orig
        if self.raw is not None:
            data["raw"] = self.raw
        return data

    def __repr__(self) -> str:
        return f"ContentItem({self.id}, {self.type.value}, {self.description[:40]!r})"


@dataclass(frozen=True)
class SingleEntity:
    """Profile returned by a `user:` query."""
    id: str
    fullname: str = ""
    username: str = ""
    avatar: str = ""
    raw: dict | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "fullname": self.fullname,
            "username": self.username,
            "avatar": self.avatar,
        }
        if self.raw is not None:
            data["raw"] = self.raw
        return data


@dataclass(frozen=True)
class FetchResult:
    """
    One page from one channel, or several pages merged together.

    original_count is the raw page size before any since-filtering and is
    only used to decide whether another page is worth asking for.
    """
    items: tuple[ContentItem, ...] = ()
    entity: SingleEntity | None = None
    new_cursor: object = None       # datetime, id watermark or adapter token
    original_count: int = 0
    next_token: object = None       # continuation token from the raw response


@dataclass
class ChannelReport:
    data: list[ContentItem] | SingleEntity
    new_since: str                  # JSON {query: marker}
    count: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict:
        if isinstance(self.data, SingleEntity):
            data = self.data.to_dict()
        else:
            data = [item.to_dict() for item in self.data]
        return {"data": data, "new_since": self.new_since}


@dataclass
class CrawlReport:
    queries: list[str]
    channels: dict[str, ChannelReport] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = 0

    @property
    def item_count(self) -> int:
        return sum(report.count for report in self.channels.values())

    def to_dict(self) -> dict:
        return {
            "channels": {name: report.to_dict() for name, report in self.channels.items()},
            "failed": list(self.failed),
            "meta": {
                "queries": list(self.queries),
                "started_at": self.started_at.isoformat(),
                "duration_ms": self.duration_ms,
                "counts": {
                    name: {"count": report.count, "duration_ms": report.duration_ms}
                    for name, report in self.channels.items()
                },
            },
        }
