"""
Cross-query deduplication by item id.
"""

from collections.abc import Iterable

from models import ContentItem


def dedupe(items: Iterable[ContentItem]) -> list[ContentItem]:
    """Keep the first item seen for each id, in the original order."""
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique
