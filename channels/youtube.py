"""
YouTube channel. Data API v3: hashtag search, channel uploads, channel lookup.

Cursor family: date watermark. The cursor is the publish date of the newest
video seen. Search sends it as publishedAfter; the page aggregator drops
anything not strictly newer, since the uploads playlist has no date filter.
Pagination follows nextPageToken.
"""

import threading

from channels.base import ChannelAdapter, ChannelError, ParseError, TransportError
from models import (
    Author,
    ContentType,
    FetchResult,
    MediaFilter,
    QueryKind,
    SingleEntity,
    classify_query,
    format_timestamp,
    parse_timestamp,
)

SITE_URL = "https://www.youtube.com/watch"
API_URL = "https://www.googleapis.com/youtube/v3"


class YoutubeChannel(ChannelAdapter):
    PAGE_SIZE = 50   # API max
    DATE_CURSOR = True
    SUPPORTED_MEDIA = frozenset({MediaFilter.VIDEOS, MediaFilter.IMAGES_VIDEOS, MediaFilter.ALL})

    def __init__(self, app_id=None, app_secret=None, app_token=None, params=None, timeout=15.0, logger=None):
        super().__init__(app_id, app_secret, app_token, params, timeout, logger)
        if not self._app_id:
            raise ChannelError("youtube needs an API key as app id")
        self._channels: dict[str, dict | None] = {}
        self._channels_lock = threading.Lock()

    def name(self) -> str:
        return "youtube"

    def _get_channel(self, channel_id: str) -> dict | None:
        """Channel resource (snippet + contentDetails), cached per crawl instance."""
        with self._channels_lock:
            if channel_id in self._channels:
                return self._channels[channel_id]

        data = self._get_json(f"{API_URL}/channels", params={
            "part": "id,snippet,contentDetails",
            "key": self._app_id,
            "id": channel_id,
        })
        items = data.get("items") or []
        channel = items[0] if items else None

        with self._channels_lock:
            self._channels[channel_id] = channel
        return channel

    def _fetch(self, query, media, cursor, include_raw, page_token) -> FetchResult:
        kind, value = classify_query(query)

        if kind is QueryKind.USER:
            channel = self._get_channel(value)
            return FetchResult(entity=self._parse_channel(channel, include_raw))

        params = {
            "part": "id,snippet",
            "key": self._app_id,
            "maxResults": self.PAGE_SIZE,
        }
        if page_token:
            params["pageToken"] = page_token

        if kind is QueryKind.FROM:
            channel = self._get_channel(value)
            uploads = (
                ((channel or {}).get("contentDetails") or {})
                .get("relatedPlaylists", {})
                .get("uploads")
            )
            if not uploads:
                self.log.warning(f"No uploads playlist for channel {value}")
                return FetchResult()
            params["playlistId"] = uploads
            endpoint = "playlistItems"
        else:
            params["q"] = value if value.startswith("#") else f"#{value}"
            params["type"] = "video"
            params["order"] = "relevance"   # order=date ignores hashtags
            if cursor:
                params["publishedAfter"] = format_timestamp(cursor)
            endpoint = "search"

        data = self._get_json(f"{API_URL}/{endpoint}", params=params)
        return self._parse_videos(data, media, include_raw)

    def _parse_videos(self, data: dict, media: MediaFilter, include_raw: bool) -> FetchResult:
        entries = data.get("items") or []

        items = []
        for entry in entries:
            attachment = self._match_media(entry, media)
            if attachment is None:
                continue

            snippet = entry.get("snippet") or {}
            video_id = self._video_id(entry)
            published = snippet.get("publishedAt", "")
            created_at = parse_timestamp(published)
            if not video_id or created_at is None:
                self.log.debug(f"Skipping entry without id or date: {entry.get('id')}")
                continue

            item = self._make_item(
                attachment,
                id=video_id,
                created_at=created_at,
                created_at_orig=published,
                description=snippet.get("description", ""),
                link=f"{SITE_URL}?v={video_id}",
                author=self._author(snippet.get("channelId", "")),
                raw=entry if include_raw else None,
            )
            if item:
                items.append(item)

        return FetchResult(
            items=tuple(items),
            original_count=len(entries),
            next_token=data.get("nextPageToken"),
        )

    @staticmethod
    def _video_id(entry: dict) -> str:
        # search results nest the id, playlist items point at the video resource
        entry_id = entry.get("id")
        if isinstance(entry_id, dict):
            return entry_id.get("videoId", "")
        resource = (entry.get("snippet") or {}).get("resourceId") or {}
        return resource.get("videoId", "")

    def _author(self, channel_id: str) -> Author:
        if not channel_id:
            return Author(id="")
        try:
            channel = self._get_channel(channel_id)
        except (TransportError, ParseError) as e:
            self.log.warning(f"Author lookup failed for {channel_id}: {e}")
            channel = None
        if not channel:
            return Author(id=channel_id)
        snippet = channel.get("snippet") or {}
        title = snippet.get("title", "")
        return Author(
            id=channel.get("id", channel_id),
            avatar=snippet.get("thumbnails", {}).get("high", {}).get("url", ""),
            fullname=title,
            username=title,
        )

    def _parse_video(self, entry: dict) -> dict | None:
        thumbnails = (entry.get("snippet") or {}).get("thumbnails") or {}
        return {
            "source": thumbnails.get("high", {}).get("url", ""),
            "thumb": thumbnails.get("default", {}).get("url", ""),
            "type": ContentType.VIDEO,
        }

    @staticmethod
    def _parse_channel(channel: dict | None, include_raw: bool) -> SingleEntity | None:
        if not channel:
            return None
        snippet = channel.get("snippet") or {}
        return SingleEntity(
            id=channel.get("id", ""),
            fullname=snippet.get("title", ""),
            username=snippet.get("title", ""),
            avatar=snippet.get("thumbnails", {}).get("high", {}).get("url", ""),
            raw=channel if include_raw else None,
        )
