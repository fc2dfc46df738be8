"""Command line interface for blobcatalog."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

from .config import AppConfig, load_config
from .errors import BlobCatalogError, NotModifiedError
from .logging_utils import configure_logging
from .provider import BlobStorageEntityProvider
from .reader import build_readers, reader_for_url
from .scheduler import IntervalScheduler
from .sink import JsonFileSink

LOGGER = logging.getLogger("blobcatalog")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to the JSON configuration file.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging output.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Publish container contents to the sink.")
    sync.add_argument(
        "--once",
        action="store_true",
        help="Refresh every provider a single time instead of scheduling.",
    )

    read = commands.add_parser("read", help="Download a single blob.")
    read.add_argument("url")
    read.add_argument("--etag", help="Only download if the blob no longer has this ETag.")
    read.add_argument(
        "--modified-after",
        type=datetime.fromisoformat,
        help="Only download if the blob changed after this ISO-8601 timestamp.",
    )
    read.add_argument("--output", type=Path, help="Write content here instead of stdout.")

    tree = commands.add_parser("tree", help="Download every blob under a prefix.")
    tree.add_argument("url")
    tree.add_argument("directory", type=Path)

    return parser.parse_args(argv)


def run_sync(config: AppConfig, *, once: bool) -> int:
    if config.sink is None:
        raise ValueError("sink.path must be configured to run sync")
    sink = JsonFileSink(config.sink.path)
    scheduler = IntervalScheduler()
    providers = BlobStorageEntityProvider.from_config(config, scheduler=scheduler)
    for provider in providers:
        provider.connect(sink)

    if once:
        ran = scheduler.run_all_once()
        LOGGER.info("Refreshed %s provider(s)", ran)
        return 0

    scheduler.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        LOGGER.info("Stopping scheduler")
    finally:
        scheduler.shutdown(wait=False)
    return 0


def run_read(config: AppConfig, args: argparse.Namespace) -> int:
    reader = reader_for_url(build_readers(config), args.url)
    try:
        response = reader.read_url(
            args.url, etag=args.etag, last_modified_after=args.modified_after
        )
    except NotModifiedError:
        LOGGER.info("%s not modified", args.url)
        return 0
    if args.output:
        args.output.write_bytes(response.buffer())
        LOGGER.info("Wrote %s (etag=%s) to %s", args.url, response.etag, args.output)
    else:
        sys.stdout.buffer.write(response.buffer())
    return 0


def run_tree(config: AppConfig, args: argparse.Namespace) -> int:
    reader = reader_for_url(build_readers(config), args.url)
    response = reader.read_tree(args.url)
    written = response.write_to_directory(args.directory)
    LOGGER.info("Wrote %s file(s) to %s", len(written), args.directory)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)
    configure_logging(
        args.verbose, config.logging.directory, keep_days=config.logging.keep_days
    )
    try:
        if args.command == "sync":
            return run_sync(config, once=args.once)
        if args.command == "read":
            return run_read(config, args)
        return run_tree(config, args)
    except BlobCatalogError as exc:
        LOGGER.error("%s (cause: %s)", exc, exc.cause)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
