from crawler.dedupe import dedupe
from crawler.engine import Crawler
from crawler.pages import PageAggregator, merge_pages, since_filter

__all__ = [
    "Crawler",
    "PageAggregator",
    "dedupe",
    "merge_pages",
    "since_filter",
]
