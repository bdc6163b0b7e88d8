"""
Crawl orchestration. Fans queries out over every configured channel.

One task per (channel, query) pair runs on a shared thread pool. Each
channel's tasks are joined in query order, their items merged and
deduplicated, and their cursors packed into the channel's new_since.
A channel that fails in any way is left out of the report; the others
are untouched.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

from channels import ChannelAdapter, create_channel
from config.settings import ChannelConfig
from crawler import cursor
from crawler.dedupe import dedupe
from crawler.pages import DEFAULT_MAX_PAGES, PageAggregator
from models import ChannelReport, ContentItem, CrawlReport, FetchResult, SingleEntity

log = logging.getLogger(__name__)


@dataclass
class QueryOutcome:
    """What one (channel, query) task hands back to the join."""
    query: str
    result: FetchResult | None      # None: a page in the chain failed
    since: object                   # marker the query started from
    finished_at: float


class Crawler:
    def __init__(
        self,
        channels: dict[str, ChannelConfig],
        *,
        factory: Callable[..., ChannelAdapter] = create_channel,
        timeout: float = 15.0,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_workers: int = 8,
        logger: logging.Logger | None = None,
    ):
        self._channels = dict(channels)
        self._factory = factory
        self._timeout = timeout
        self._max_pages = max_pages
        self._max_workers = max(1, max_workers)
        self._log = logger or log

    def crawl(
        self,
        queries: str | list[str],
        include_raw: bool = False,
        cancel: threading.Event | None = None,
    ) -> CrawlReport:
        """
        Run every query on every channel.

        Args:
            queries: One query term or several.
            include_raw: Attach source payloads to items.
            cancel: Set it to stop every chain at its next page boundary.
                Channels that had not finished are left out.

        Returns:
            CrawlReport with one ChannelReport per channel that completed.
        """
        if isinstance(queries, str):
            queries = [queries]

        report = CrawlReport(queries=list(queries))
        started = time.perf_counter()
        self._log.info(
            f"Crawl started: channels={', '.join(self._channels) or '-'} "
            f"query={', '.join(queries)}"
        )

        adapters: dict[str, ChannelAdapter] = {}
        for name, config in self._channels.items():
            try:
                adapters[name] = self._factory(
                    name, config, timeout=self._timeout, logger=self._log.getChild(name),
                )
            except Exception as e:
                self._fail(report, name, e)

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="crawl") as executor:
            pending: dict[str, list[Future]] = {
                name: [
                    executor.submit(self._run_query, name, adapter, query, include_raw, cancel)
                    for query in queries
                ]
                for name, adapter in adapters.items()
            }

            for name, futures in pending.items():
                try:
                    outcomes = [future.result() for future in futures]
                except Exception as e:
                    # the rest of this channel's queries no longer matter
                    for future in futures:
                        future.cancel()
                    self._fail(report, name, e)
                    continue
                report.channels[name] = self._assemble(name, outcomes, started)

        report.duration_ms = int((time.perf_counter() - started) * 1000)
        self._log.info(
            f"Crawl finished: {report.item_count} results from "
            f"{len(report.channels)}/{len(self._channels)} channels in {report.duration_ms} ms"
        )
        return report

    def _run_query(
        self,
        name: str,
        adapter: ChannelAdapter,
        query: str,
        include_raw: bool,
        cancel: threading.Event | None,
    ) -> QueryOutcome:
        config = self._channels[name]
        since = cursor.decode(config.since, query, requires_date=adapter.DATE_CURSOR)
        aggregator = PageAggregator(adapter, max_pages=self._max_pages, cancel=cancel, logger=adapter.log)
        result = aggregator.run(query, config.media, since, include_raw)
        return QueryOutcome(query=query, result=result, since=since, finished_at=time.perf_counter())

    def _assemble(self, name: str, outcomes: list[QueryOutcome], started: float) -> ChannelReport:
        items: list[ContentItem] = []
        entity: SingleEntity | None = None
        markers = {}

        for outcome in outcomes:
            result = outcome.result
            if result is None:
                # keep the old position so the next crawl retries from it
                markers[outcome.query] = outcome.since
                continue
            if result.entity is not None:
                entity = result.entity
            else:
                items.extend(result.items)
            markers[outcome.query] = result.new_cursor

        data = entity if entity is not None else dedupe(items)
        count = 1 if entity is not None else len(data)
        finished = max((o.finished_at for o in outcomes), default=started)
        duration_ms = int((finished - started) * 1000)

        self._log.info(f"- {name} found {count} results in {duration_ms} ms")
        return ChannelReport(
            data=data,
            new_since=cursor.encode(markers),
            count=count,
            duration_ms=duration_ms,
        )

    def _fail(self, report: CrawlReport, name: str, error: Exception):
        report.failed.append(name)
        self._log.error(f"- {name} failed: {error}")
