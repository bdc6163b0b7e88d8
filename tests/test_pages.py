"""
Tests for page aggregation:
- merging pages and their cursors
- since-filtering for date-cursor channels
- pagination stop conditions, failures and cancellation
"""

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import sys

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from channels.base import ChannelAdapter, CrawlCancelled, TransportError
from crawler.pages import PageAggregator, merge_pages, since_filter
from models import Author, ContentItem, ContentType, FetchResult, MediaFilter, SingleEntity


JAN_1 = datetime(2023, 1, 1, tzinfo=timezone.utc)


def make_item(item_id: str, published: datetime | None = None) -> ContentItem:
    return ContentItem(
        id=item_id,
        created_at=published or JAN_1,
        description=f"post {item_id}",
        link=f"https://example.com/{item_id}",
        type=ContentType.TEXT,
        author=Author(id="a1"),
        created_at_orig=published.isoformat() if published else None,
    )


def make_page(page_no: int, size: int, next_token=None, cursor=None) -> FetchResult:
    return FetchResult(
        items=tuple(make_item(f"{page_no}-{i}") for i in range(size)),
        new_cursor=cursor,
        original_count=size,
        next_token=next_token,
    )


class ScriptedChannel(ChannelAdapter):
    """Serves a fixed list of pages; an exception in the list is raised from _fetch."""

    PAGE_SIZE = 100

    def __init__(self, pages, date_cursor=False, on_fetch=None):
        self.DATE_CURSOR = date_cursor
        self._pages = list(pages)
        self._on_fetch = on_fetch
        self.tokens = []
        super().__init__()

    def name(self) -> str:
        return "scripted"

    def _fetch(self, query, media, cursor, include_raw, page_token):
        self.tokens.append(page_token)
        if self._on_fetch:
            self._on_fetch()
        page = self._pages[min(len(self.tokens), len(self._pages)) - 1]
        if isinstance(page, Exception):
            raise page
        return page


# ──────────────────────────────────────────────
# merge_pages
# ──────────────────────────────────────────────

class TestMergePages:
    def test_items_concatenate_in_order(self):
        merged = merge_pages(make_page(1, 2), make_page(2, 3))
        assert [i.id for i in merged.items] == ["1-0", "1-1", "2-0", "2-1", "2-2"]

    def test_later_page_drives_pagination(self):
        merged = merge_pages(make_page(1, 100, next_token="a"), make_page(2, 40, next_token="b"))
        assert merged.original_count == 40
        assert merged.next_token == "b"

    def test_later_cursor_wins(self):
        merged = merge_pages(make_page(1, 1, cursor="100"), make_page(2, 1, cursor="200"))
        assert merged.new_cursor == "200"

    def test_missing_later_cursor_keeps_earlier(self):
        merged = merge_pages(make_page(1, 1, cursor="100"), make_page(2, 1))
        assert merged.new_cursor == "100"

    def test_greater_date_wins(self):
        later_date = JAN_1 + timedelta(days=1)
        merged = merge_pages(make_page(1, 1, cursor=later_date), make_page(2, 1, cursor=JAN_1))
        assert merged.new_cursor == later_date


# ──────────────────────────────────────────────
# since_filter
# ──────────────────────────────────────────────

class TestSinceFilter:
    def _result(self, *days):
        return FetchResult(
            items=tuple(make_item(f"d{d}", JAN_1 + timedelta(days=d)) for d in days),
            original_count=len(days),
        )

    def test_keeps_only_strictly_newer(self):
        filtered = since_filter(self._result(0, 1, 2), JAN_1)
        assert [i.id for i in filtered.items] == ["d1", "d2"]
        assert filtered.new_cursor == JAN_1 + timedelta(days=2)

    def test_nothing_newer_keeps_since(self):
        filtered = since_filter(self._result(0), JAN_1 + timedelta(days=5))
        assert filtered.items == ()
        assert filtered.new_cursor == JAN_1 + timedelta(days=5)

    def test_no_since_keeps_everything(self):
        filtered = since_filter(self._result(2, 0, 1), None)
        assert len(filtered.items) == 3
        assert filtered.new_cursor == JAN_1 + timedelta(days=2)

    def test_unparseable_dates_dropped_with_since(self):
        result = FetchResult(items=(make_item("nodate"),), original_count=1)
        assert since_filter(result, JAN_1).items == ()

    def test_unparseable_dates_ignored_for_cursor(self):
        result = FetchResult(items=(make_item("nodate"),), original_count=1)
        filtered = since_filter(result, None)
        assert len(filtered.items) == 1
        assert filtered.new_cursor is None

    def test_original_count_untouched(self):
        filtered = since_filter(self._result(0, 0, 0), JAN_1)
        assert filtered.items == ()
        assert filtered.original_count == 3


# ──────────────────────────────────────────────
# PageAggregator
# ──────────────────────────────────────────────

class TestPageAggregator:
    def test_follows_tokens_until_short_page(self):
        channel = ScriptedChannel([
            make_page(1, 100, next_token="t1"),
            make_page(2, 100, next_token="t2"),
            make_page(3, 50, next_token="t3"),
        ])
        result = PageAggregator(channel).run("#cats", MediaFilter.ALL)

        assert len(result.items) == 250
        assert channel.tokens == [None, "t1", "t2"]

    def test_stops_without_token(self):
        channel = ScriptedChannel([make_page(1, 100), make_page(2, 100)])
        result = PageAggregator(channel).run("#cats", MediaFilter.ALL)
        assert len(result.items) == 100
        assert channel.tokens == [None]

    def test_page_cap(self):
        channel = ScriptedChannel([
            make_page(1, 100, next_token="t1"),
            make_page(2, 100, next_token="t2"),
            make_page(3, 100, next_token="t3"),
        ])
        result = PageAggregator(channel, max_pages=2).run("#cats", MediaFilter.ALL)
        assert len(result.items) == 200
        assert len(channel.tokens) == 2

    def test_repeated_token_stops(self):
        channel = ScriptedChannel([
            make_page(1, 100, next_token="same"),
            make_page(2, 100, next_token="same"),
        ])
        result = PageAggregator(channel).run("#cats", MediaFilter.ALL)
        assert len(result.items) == 200
        assert channel.tokens == [None, "same"]

    def test_first_page_failure(self):
        channel = ScriptedChannel([TransportError("boom")])
        assert PageAggregator(channel).run("#cats", MediaFilter.ALL) is None

    def test_later_page_failure_discards_everything(self):
        channel = ScriptedChannel([
            make_page(1, 100, next_token="t1"),
            TransportError("HTTP 500"),
        ])
        assert PageAggregator(channel).run("#cats", MediaFilter.ALL) is None
        assert channel.tokens == [None, "t1"]

    def test_entity_is_never_paginated(self):
        page = FetchResult(entity=SingleEntity(id="u1"), original_count=100, next_token="t1")
        channel = ScriptedChannel([page])
        result = PageAggregator(channel).run("user:u1", MediaFilter.ALL)
        assert result.entity.id == "u1"
        assert channel.tokens == [None]

    def test_profile_not_found_is_not_paginated(self):
        channel = ScriptedChannel([
            FetchResult(original_count=100, next_token="t1"),
            make_page(2, 100),
        ])
        result = PageAggregator(channel).run("user:nobody", MediaFilter.ALL)
        assert result.entity is None
        assert result.items == ()
        assert channel.tokens == [None]

    def test_cancelled_before_first_page(self):
        cancel = threading.Event()
        cancel.set()
        channel = ScriptedChannel([make_page(1, 10)])
        with pytest.raises(CrawlCancelled):
            PageAggregator(channel, cancel=cancel).run("#cats", MediaFilter.ALL)
        assert channel.tokens == []

    def test_cancelled_between_pages(self):
        cancel = threading.Event()
        channel = ScriptedChannel(
            [make_page(1, 100, next_token="t1"), make_page(2, 10)],
            on_fetch=cancel.set,
        )
        with pytest.raises(CrawlCancelled):
            PageAggregator(channel, cancel=cancel).run("#cats", MediaFilter.ALL)
        assert channel.tokens == [None]

    def test_date_channel_filters_after_merge(self):
        page = FetchResult(
            items=(
                make_item("old", JAN_1),
                make_item("new", JAN_1 + timedelta(hours=1)),
            ),
            original_count=2,
        )
        channel = ScriptedChannel([page], date_cursor=True)
        result = PageAggregator(channel).run("#cats", MediaFilter.ALL, cursor=JAN_1)
        assert [i.id for i in result.items] == ["new"]
        assert result.new_cursor == JAN_1 + timedelta(hours=1)

    def test_date_channel_without_new_items_keeps_cursor(self):
        channel = ScriptedChannel([FetchResult()], date_cursor=True)
        result = PageAggregator(channel).run("#cats", MediaFilter.ALL, cursor=JAN_1)
        assert result.items == ()
        assert result.new_cursor == JAN_1
