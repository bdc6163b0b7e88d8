"""
Page aggregation. Drives one channel through every page of one query.

Pages are fetched strictly one after another: page N+1 needs page N's
continuation token. The chain stops on a short page, a missing token, a
token it has already seen, or the page cap.
"""

import logging
import threading
from datetime import datetime

from channels.base import ChannelAdapter, CrawlCancelled
from models import FetchResult, MediaFilter, QueryKind, classify_query, parse_timestamp

log = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 50


def merge_pages(earlier: FetchResult, later: FetchResult) -> FetchResult:
    """
    Append a later page to what has been gathered so far.

    Items concatenate in fetch order. The later page's cursor wins when it
    has one, except that between two dates the greater one wins.
    """
    new_cursor = later.new_cursor if later.new_cursor is not None else earlier.new_cursor
    if isinstance(earlier.new_cursor, datetime) and isinstance(later.new_cursor, datetime):
        new_cursor = max(earlier.new_cursor, later.new_cursor)

    return FetchResult(
        items=earlier.items + later.items,
        new_cursor=new_cursor,
        original_count=later.original_count,
        next_token=later.next_token,
    )


def since_filter(result: FetchResult, since: datetime | None) -> FetchResult:
    """
    Drop items not strictly newer than `since` and move the cursor to the
    newest surviving item. With nothing newer the cursor stays at `since`.
    """
    kept = []
    dates = []
    for item in result.items:
        published = parse_timestamp(item.created_at_orig)
        if since is not None and (published is None or published <= since):
            continue
        kept.append(item)
        if published is not None:
            dates.append(published)

    return FetchResult(
        items=tuple(kept),
        new_cursor=max(dates, default=since),
        original_count=result.original_count,
        next_token=result.next_token,
    )


class PageAggregator:
    def __init__(
        self,
        channel: ChannelAdapter,
        max_pages: int = DEFAULT_MAX_PAGES,
        cancel: threading.Event | None = None,
        logger: logging.Logger | None = None,
    ):
        self._channel = channel
        self._max_pages = max_pages
        self._cancel = cancel
        self._log = logger or log

    def _check_cancelled(self, query: str):
        if self._cancel is not None and self._cancel.is_set():
            raise CrawlCancelled(f"{self._channel.name()} cancelled while fetching '{query}'")

    def run(self, query: str, media: MediaFilter, cursor=None, include_raw: bool = False) -> FetchResult | None:
        """
        Fetch and merge every page of `query`.

        Returns:
            The merged result, or None if any page failed. Pages merged
            before a failure are discarded with it.

        Raises:
            UnsupportedQueryError: From the channel, on the first page.
            CrawlCancelled: The cancel event was set at a page boundary.
        """
        self._check_cancelled(query)
        page = self._channel.fetch_page(query, media, cursor, include_raw)
        if page is None:
            return None
        # profile lookups are a single page, found or not
        if page.entity is not None or classify_query(query)[0] is QueryKind.USER:
            return page

        result = page
        pages = 1
        seen_tokens = set()
        page_size = self._channel.PAGE_SIZE

        while page.original_count >= page_size and page.next_token is not None:
            token = page.next_token
            if token in seen_tokens:
                self._log.warning(
                    f"{self._channel.name()} returned page token {token!r} twice for '{query}', stopping"
                )
                break
            if pages >= self._max_pages:
                self._log.warning(
                    f"{self._channel.name()} hit the {self._max_pages} page cap for '{query}', stopping"
                )
                break
            seen_tokens.add(token)

            self._check_cancelled(query)
            page = self._channel.fetch_page(query, media, cursor, include_raw, page_token=token)
            if page is None:
                self._log.error(
                    f"{self._channel.name()} page {pages + 1} failed for '{query}', "
                    f"dropping {len(result.items)} items already fetched"
                )
                return None
            result = merge_pages(result, page)
            pages += 1

        self._log.debug(f"{self._channel.name()} '{query}': {len(result.items)} items over {pages} pages")

        if self._channel.DATE_CURSOR:
            result = since_filter(result, cursor)
        return result
