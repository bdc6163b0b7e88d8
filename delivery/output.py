"""
Output delivery. CLI summary (stdout) and JSON report.

CLI is the primary interface. JSON is for piping into other tools.
"""

import json
import logging
from pathlib import Path

from models import CrawlReport, SingleEntity

log = logging.getLogger(__name__)


def deliver_cli(report: CrawlReport, show: int = 5):
    """Print a per-channel summary with the first few items."""
    separator = "─" * 60

    print(f"\n{separator}")
    print(f"  CRAWL: {', '.join(report.queries)}")
    print(f"  {report.started_at.strftime('%Y-%m-%d %H:%M UTC')}")
    print(f"  ({report.item_count} results in {report.duration_ms} ms)")
    print(separator)

    for name, channel in report.channels.items():
        print(f"\n  {name}: {channel.count} results in {channel.duration_ms} ms")
        if isinstance(channel.data, SingleEntity):
            entity = channel.data
            print(f"    @{entity.username} ({entity.fullname}) id={entity.id}")
        else:
            for item in channel.data[:show]:
                text = " ".join(item.description.split())[:70]
                print(f"    [{item.type.value}] {item.id}: {text}")
            if channel.count > show:
                print(f"    ... {channel.count - show} more")
        print(f"    new_since: {channel.new_since}")

    for name in report.failed:
        print(f"\n  {name}: FAILED (see log)")

    print()
    print(separator)


def deliver_json(report: CrawlReport, out_path: str | None = None) -> str:
    """Write the report as JSON to a file, or print it. Returns the JSON text."""
    json_str = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)

    if out_path:
        path = Path(out_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json_str, encoding="utf-8")
        log.info(f"Wrote report to {path}")
        print(f"Wrote {report.item_count} results to {path}")
    else:
        print(json_str)

    return json_str
