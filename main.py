#!/usr/bin/env python3
"""
social-crawler: one resumable feed out of many social channels.

Usage:
    python main.py crawl "#cats" "from:nasa"   # Crawl every configured channel
    python main.py crawl "#cats" --json        # Print the full report as JSON
    python main.py crawl "#cats" --out r.json  # Write the full report to a file
    python main.py channels                    # Show configured channels and cursors
    python main.py stats                       # Show stored item counts
    python main.py serve                       # Start the read-only API server
"""

import argparse
import logging
import sys
import threading
from dataclasses import replace

from config import Config, load_config
from crawler import Crawler
from delivery import deliver_cli, deliver_json
from models import CrawlReport
from storage import Storage


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def resume_channels(config: Config, storage: Storage | None) -> dict:
    """
    Channel configs for this crawl. A channel without an explicit since
    resumes from the new_since it returned last time.
    """
    channels = {}
    for name, channel in config.channels.items():
        if channel.since is None and storage is not None:
            stored = storage.get_channel_state(name)
            if stored:
                channel = replace(channel, since=stored)
        channels[name] = channel
    return channels


def run_crawl(crawler: Crawler, queries: list[str], include_raw: bool) -> CrawlReport:
    """Run the crawl off the main thread so Ctrl-C can cancel it cleanly."""
    cancel = threading.Event()
    outcome: dict = {}

    def target():
        try:
            outcome["report"] = crawler.crawl(queries, include_raw=include_raw, cancel=cancel)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=target, name="crawl-main", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        print("Cancelling, waiting for in-flight pages...", file=sys.stderr)
        cancel.set()
        worker.join()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["report"]


def cmd_crawl(config: Config, storage: Storage, args) -> CrawlReport:
    """Crawl, store new items and cursors, print the result."""
    if not config.channels:
        print("No channels configured. Set SOCIAL_<NAME>_ID/_SECRET/_TOKEN.", file=sys.stderr)
        sys.exit(1)

    channels = resume_channels(config, None if args.no_resume else storage)
    crawler = Crawler(
        channels,
        timeout=config.timeout,
        max_pages=config.max_pages,
        max_workers=config.max_workers,
        logger=logging.getLogger("crawler"),
    )
    report = run_crawl(crawler, args.queries, include_raw=args.raw)

    if not args.no_store:
        run_id, new_count = storage.save_report(report)
        logging.getLogger("storage").info(f"Run {run_id}: stored {new_count} new items")

    if args.out or args.json:
        deliver_json(report, args.out)
    else:
        deliver_cli(report)

    if config.channels and not report.channels:
        sys.exit(1)
    return report


def cmd_channels(config: Config, storage: Storage):
    """List configured channels and where each will resume from."""
    if not config.channels:
        print("No channels configured.")
        return
    for name, channel in config.channels.items():
        since = channel.since or storage.get_channel_state(name) or "-"
        source = "config" if channel.since else "stored"
        print(f"  {name}: media={channel.media.value} since({source})={since}")


def cmd_stats(config: Config, storage: Storage):
    """Print collection stats."""
    stats = storage.get_stats()
    print(f"Total items: {stats['total_items']} ({stats['crawl_runs']} crawls)")
    for channel, count in stats["by_channel"].items():
        print(f"  {channel}: {count}")
    for content_type, count in stats["by_type"].items():
        print(f"  [{content_type}] {count}")


def cmd_serve(config: Config, args):
    """Start the API server."""
    from api.server import create_app

    if not config.db_path.exists():
        # read-only connections need the file to exist
        Storage(config.db_path).close()

    app = create_app(db_path=config.db_path)
    print(f"Starting server at http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.verbose)


def cli():
    parser = argparse.ArgumentParser(
        prog="social-crawler",
        description="Aggregate images, videos and posts from many social channels",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    crawl_parser = sub.add_parser("crawl", parents=[common], help="Crawl every configured channel")
    crawl_parser.add_argument("queries", nargs="+", help="Keyword, #hashtag, user:<id> or from:<id>")
    crawl_parser.add_argument("--raw", action="store_true", help="Include raw source payloads")
    crawl_parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    crawl_parser.add_argument(
        "--out", type=str, default=None,
        help="Write the JSON report to this file",
    )
    crawl_parser.add_argument(
        "--no-resume", action="store_true",
        help="Ignore stored cursors and start from scratch",
    )
    crawl_parser.add_argument(
        "--no-store", action="store_true",
        help="Do not store items or new cursors",
    )

    sub.add_parser("channels", parents=[common], help="Show configured channels and cursors")
    sub.add_parser("stats", parents=[common], help="Show stored item counts")

    serve_parser = sub.add_parser("serve", parents=[common], help="Start the read-only API server")
    serve_parser.add_argument("--port", type=int, default=5003, help="Port (default 5003)")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Host (default 127.0.0.1)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    config = load_config()

    # serve opens its own read-only connections
    if args.command == "serve":
        cmd_serve(config, args)
        return

    storage = Storage(config.db_path)

    try:
        match args.command:
            case "crawl":
                cmd_crawl(config, storage, args)
            case "channels":
                cmd_channels(config, storage)
            case "stats":
                cmd_stats(config, storage)
            case _:
                parser.print_help()
    finally:
        storage.close()


if __name__ == "__main__":
    cli()
