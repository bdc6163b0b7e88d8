"""
Instagram channel (legacy v1 API): tag feeds, user media, user profiles.

Cursor family: adapter token. For tags the cursor is the next_max_tag_id the
API hands out, for user timelines the id of the newest matching post. Both
are opaque strings passed back unchanged. One page per crawl.
"""

import re
from datetime import datetime, timezone

from channels.base import ChannelAdapter, ChannelError
from models import (
    Author,
    ContentType,
    FetchResult,
    MediaFilter,
    QueryKind,
    SingleEntity,
    classify_query,
)

API_URL = "https://api.instagram.com/v1"


def sanitize(value: str) -> str:
    """Keep only characters that are safe in a path segment."""
    return re.sub(r"[^\w-]", "", value)


def _parse_created_time(value) -> datetime | None:
    """created_time is a unix timestamp sent as a string."""
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class InstagramChannel(ChannelAdapter):
    PAGE_SIZE = 20
    # Every post carries an image or a video
    SUPPORTED_MEDIA = frozenset({
        MediaFilter.IMAGES,
        MediaFilter.VIDEOS,
        MediaFilter.IMAGES_VIDEOS,
        MediaFilter.ALL,
    })

    def __init__(self, app_id=None, app_secret=None, app_token=None, params=None, timeout=15.0, logger=None):
        super().__init__(app_id, app_secret, app_token, params, timeout, logger)
        if not self._app_id and not self._app_token:
            raise ChannelError("instagram needs a client id or an access token")

    def name(self) -> str:
        return "instagram"

    def _fetch(self, query, media, cursor, include_raw, page_token) -> FetchResult:
        kind, value = classify_query(query)

        if kind is QueryKind.USER:
            data = self._get_json(
                f"{API_URL}/users/{sanitize(value)}/",
                params={"client_id": self._app_id},
            )
            return FetchResult(entity=self._parse_user(data.get("data"), include_raw))

        if kind is QueryKind.FROM:
            url = f"{API_URL}/users/{sanitize(value)}/media/recent/"
            params = {"access_token": self._app_token}
            if cursor:
                params["min_id"] = cursor
        else:
            url = f"{API_URL}/tags/{sanitize(value.lstrip('#'))}/media/recent/"
            params = {"client_id": self._app_id}
            if cursor:
                params["max_tag_id"] = cursor

        data = self._get_json(url, params=params)
        return self._parse_media(data, media, include_raw)

    def _parse_media(self, data: dict, media: MediaFilter, include_raw: bool) -> FetchResult:
        entries = data.get("data")
        if not isinstance(entries, list):
            self.log.warning("Unexpected media payload, no entries")
            return FetchResult()

        items = []
        newest_id = None
        for entry in entries:
            attachment = self._match_media(entry, media)
            if attachment is None:
                continue

            created_at = _parse_created_time(entry.get("created_time"))
            if created_at is None:
                self.log.debug(f"Skipping post {entry.get('id')} with bad date {entry.get('created_time')!r}")
                continue

            if newest_id is None:
                newest_id = entry.get("id")

            user = entry.get("user") or {}
            caption = entry.get("caption") or {}
            item = self._make_item(
                attachment,
                id=entry.get("id", ""),
                created_at=created_at,
                description=caption.get("text", ""),
                link=entry.get("link", ""),
                author=Author(
                    id=user.get("id", ""),
                    avatar=user.get("profile_picture", ""),
                    fullname=user.get("full_name", ""),
                    username=user.get("username", ""),
                ),
                raw=entry if include_raw else None,
            )
            if item:
                items.append(item)

        pagination = data.get("pagination") or {}
        return FetchResult(
            items=tuple(items),
            new_cursor=pagination.get("next_max_tag_id") or newest_id,
            original_count=len(entries),
        )

    def _parse_image(self, entry: dict) -> dict | None:
        if entry.get("type") != "image":
            return None
        images = entry.get("images") or {}
        return {
            "source": images.get("standard_resolution", {}).get("url", ""),
            "thumb": images.get("low_resolution", {}).get("url", ""),
            "type": ContentType.IMAGE,
        }

    def _parse_video(self, entry: dict) -> dict | None:
        if entry.get("type") != "video":
            return None
        images = entry.get("images") or {}
        videos = entry.get("videos") or {}
        return {
            "source": videos.get("standard_resolution", {}).get("url", ""),
            "thumb": images.get("low_resolution", {}).get("url", ""),
            "type": ContentType.VIDEO,
        }

    @staticmethod
    def _parse_user(data: dict | None, include_raw: bool) -> SingleEntity | None:
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return SingleEntity(
            id=data["id"],
            fullname=data.get("full_name", ""),
            username=data.get("username", ""),
            avatar=data.get("profile_picture", ""),
            raw=data if include_raw else None,
        )
