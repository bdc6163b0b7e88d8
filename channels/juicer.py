"""
Juicer channel. Reads one aggregated Juicer feed, identified by the app id.

The feed is fixed by configuration, so query terms only key the cursor.
`user:` and `from:` have no meaning here and are rejected.

Cursor family: date watermark, sent as starting_at. Pages are numbered;
the next page number is always offered and the aggregator stops on a short
page.
"""

from channels.base import ChannelAdapter, ChannelError
from models import Author, ContentType, FetchResult, MediaFilter, QueryKind, parse_timestamp

API_URL = "https://www.juicer.io/api/feeds"


class JuicerChannel(ChannelAdapter):
    PAGE_SIZE = 100   # API max
    DATE_CURSOR = True
    SUPPORTED_QUERIES = frozenset({QueryKind.SEARCH})

    def __init__(self, app_id=None, app_secret=None, app_token=None, params=None, timeout=15.0, logger=None):
        super().__init__(app_id, app_secret, app_token, params, timeout, logger)
        if not self._app_id:
            raise ChannelError("juicer needs the feed slug as app id")

    def name(self) -> str:
        return "juicer"

    def _fetch(self, query, media, cursor, include_raw, page_token) -> FetchResult:
        page = int(page_token or 1)
        params = {"per": self.PAGE_SIZE, "page": page}
        if cursor:
            params["starting_at"] = cursor.strftime("%Y-%m-%d %H:%M")
        if self._params.get("filter"):
            params["filter"] = self._params["filter"]

        data = self._get_json(f"{API_URL}/{self._app_id}", params=params)
        entries = (data.get("posts") or {}).get("items")
        if not isinstance(entries, list):
            self.log.warning(f"Feed {self._app_id} returned no posts")
            return FetchResult()

        return FetchResult(
            items=tuple(self._parse_posts(entries, media, include_raw)),
            original_count=len(entries),
            next_token=page + 1,
        )

    def _parse_posts(self, entries: list, media: MediaFilter, include_raw: bool) -> list:
        items = []
        for entry in entries:
            attachment = self._match_media(entry, media)
            if attachment is None:
                continue

            published = entry.get("external_created_at", "")
            created_at = parse_timestamp(published)
            if created_at is None:
                self.log.debug(f"Skipping post {entry.get('external_id')} with bad date {published!r}")
                continue

            item = self._make_item(
                attachment,
                id=str(entry.get("external_id", "")),
                created_at=created_at,
                created_at_orig=published,
                description=entry.get("unformatted_message") or "",
                link=entry.get("full_url", ""),
                author=Author(
                    id=str(entry.get("poster_id", "")),
                    avatar=entry.get("poster_image") or "",
                    username=entry.get("poster_name", ""),
                ),
                raw=entry if include_raw else None,
            )
            if item:
                items.append(item)
        return items

    def _parse_image(self, entry: dict) -> dict | None:
        image = entry.get("image")
        # safe_image.php is a Facebook proxy placeholder, not the picture
        if image and "safe_image.php" not in image:
            return {"source": image, "thumb": image, "type": ContentType.IMAGE}
        return None

    def _parse_video(self, entry: dict) -> dict | None:
        video = entry.get("video")
        if video:
            return {"source": video, "thumb": video, "type": ContentType.VIDEO}
        return None
