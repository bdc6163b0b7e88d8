"""
Base channel interface. All source integrations must implement this.
"""

import logging
from abc import ABC, abstractmethod

import requests

from models import ContentItem, ContentType, FetchResult, MediaFilter, QueryKind, classify_query

USER_AGENT = "social-crawler/0.1"


class ChannelError(Exception):
    """Raised when a channel cannot do what it was asked."""
    pass


class TransportError(ChannelError):
    """Network or HTTP failure while fetching one page."""
    pass


class ParseError(ChannelError):
    """Malformed cursor, or a response body that is not JSON."""
    pass


class UnsupportedQueryError(ChannelError):
    """The source has no equivalent for a query prefix."""
    pass


class CrawlCancelled(ChannelError):
    """The caller cancelled the crawl; seen at a page boundary."""
    pass


# filter -> (media types tried per entry, in order; entry may fall back to text)
MEDIA_RULES: dict[MediaFilter, tuple[tuple[ContentType, ...], bool]] = {
    MediaFilter.IMAGES: ((ContentType.IMAGE,), False),
    MediaFilter.VIDEOS: ((ContentType.VIDEO,), False),
    MediaFilter.IMAGES_VIDEOS: ((ContentType.IMAGE, ContentType.VIDEO), False),
    MediaFilter.TEXT: ((), True),
    MediaFilter.ALL: ((ContentType.IMAGE, ContentType.VIDEO), True),
}


class ChannelAdapter(ABC):
    """
    A channel fetches one page of normalized items for one query.

    Contract:
    - fetch_page() never lets a transport or body-parsing failure escape.
      It logs the failure and returns None instead.
    - UnsupportedQueryError is raised straight away for prefixes the source
      cannot serve. It is never retried.
    - original_count on the result is the raw page size before any
      since-filtering.
    - `user:` queries come back as FetchResult.entity and are never paginated.
    - Cursor values are private to the channel family. DATE_CURSOR channels
      take and return timezone-aware datetimes, the others opaque strings.
    - Instances are shared between the query tasks of one crawl, so
      fetch_page() must be safe to call from several threads.
    """

    PAGE_SIZE = 100
    DATE_CURSOR = False
    SUPPORTED_MEDIA = frozenset(MediaFilter)
    SUPPORTED_QUERIES = frozenset(QueryKind)

    def __init__(
        self,
        app_id: str | None = None,
        app_secret: str | None = None,
        app_token: str | None = None,
        params: dict | None = None,
        timeout: float = 15.0,
        logger: logging.Logger | None = None,
    ):
        self._app_id = app_id or ""
        self._app_secret = app_secret or ""
        self._app_token = app_token or ""
        self._params = dict(params or {})
        self._timeout = timeout
        self.log = logger or logging.getLogger(f"channels.{self.name()}")
        self._session = requests.Session()
        self._session.headers["User-Agent"] = USER_AGENT

    @abstractmethod
    def name(self) -> str:
        """Channel name, used as key in reports and stored state."""
        ...

    def fetch_page(
        self,
        query: str,
        media: MediaFilter,
        cursor=None,
        include_raw: bool = False,
        page_token=None,
    ) -> FetchResult | None:
        """
        Fetch one page for `query`.

        Args:
            query: Search term, `user:<id>` or `from:<id>`.
            media: Which item types to keep.
            cursor: Decoded since-marker for this query, or None.
            include_raw: Attach the source payload to every item.
            page_token: Continuation token from the previous page.

        Returns:
            FetchResult, or None when the page could not be fetched.

        Raises:
            UnsupportedQueryError: The source has no such query kind.
        """
        kind, _ = classify_query(query)
        if kind not in self.SUPPORTED_QUERIES:
            raise UnsupportedQueryError(f"'{kind.value}:' not supported for {self.name()}")

        if media not in self.SUPPORTED_MEDIA:
            self.log.debug(f"{media.value} not served by {self.name()}, skipping '{query}'")
            return FetchResult(new_cursor=cursor)

        try:
            return self._fetch(query, media, cursor, include_raw, page_token)
        except (TransportError, ParseError) as e:
            self.log.error(f"Fetch failed for '{query}': {e}")
            return None

    @abstractmethod
    def _fetch(self, query: str, media: MediaFilter, cursor, include_raw: bool, page_token) -> FetchResult:
        """Request and parse one page. May raise TransportError or ParseError."""
        ...

    def _get_json(self, url: str, params: dict | None = None, headers: dict | None = None) -> dict:
        """GET a JSON document. Raises TransportError or ParseError."""
        self.log.debug(f"GET {url} {params or {}}")
        try:
            resp = self._session.get(url, params=params, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise TransportError(f"{url}: {e}") from e

        if resp.status_code != 200:
            raise TransportError(f"{url}: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError(f"{url}: unable to parse response body into JSON") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ParseError(f"{url}: expected a JSON object, got {type(data).__name__}")
        return data

    # ── Media filtering ──

    def _match_media(self, entry: dict, media: MediaFilter) -> dict | None:
        """
        Media fields (source, thumb, type) for one raw entry.
        None means the entry is excluded, {} that it is kept as text.
        """
        types, text_allowed = MEDIA_RULES[media]
        parsers = {
            ContentType.IMAGE: self._parse_image,
            ContentType.VIDEO: self._parse_video,
        }
        for content_type in types:
            attachment = parsers[content_type](entry)
            if attachment:
                return attachment
        return {} if text_allowed else None

    def _parse_image(self, entry: dict) -> dict | None:
        return None

    def _parse_video(self, entry: dict) -> dict | None:
        return None

    @staticmethod
    def _make_item(attachment: dict, **fields) -> ContentItem | None:
        """Build an item, text unless the attachment says otherwise. Text needs a body."""
        fields.setdefault("type", ContentType.TEXT)
        fields.update(attachment)
        item = ContentItem(**fields)
        if item.type is ContentType.TEXT and not item.description:
            return None
        return item
