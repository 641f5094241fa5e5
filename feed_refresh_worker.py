#!/usr/bin/env python3
"""Dashboard data refresh worker.

Runs one refresh cycle (or scheduled) over:
- RSS collection + every feed it lists
- Bookmarks collection
- Tag logs for the tracked tags

Everything goes through the same caches the dashboard reads, so a run
leaves fresh data behind for the next reader.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time

import schedule

from craftboard.config import Settings
from craftboard.dashboard import build_dashboard
from craftboard.errors import ConfigurationMissing

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


async def _refresh(force_refresh: bool) -> int:
    settings = Settings.from_env()
    try:
        settings.require_api()
    except ConfigurationMissing as e:
        logger.error(f"[refresh] {e}")
        return 1

    dash = build_dashboard(settings)
    await asyncio.to_thread(dash.resolve_collection_ids)

    await asyncio.gather(
        dash.feeds.refresh(force_refresh),
        dash.bookmarks.refresh(force_refresh),
        dash.tags.refresh(force_refresh),
    )
    await dash.feeds.aggregator.settle()

    errors = [(name, view.error) for name, view in
              (("rss", dash.feeds), ("bookmarks", dash.bookmarks), ("tags", dash.tags)) if view.error]
    for name, err in errors:
        logger.error(f"[{name}] {err}")

    logger.info(
        f"[refresh] feeds={len(dash.feeds.feed_results)}/{len(dash.feeds.records)} "
        f"bookmarks={len(dash.bookmarks.bookmarks)} logs={len(dash.tags.logs)}"
    )
    return 1 if errors else 0


def run_once(force_refresh: bool = False) -> int:
    return asyncio.run(_refresh(force_refresh))


def run_scheduled() -> None:
    interval = Settings.from_env().refresh_interval_minutes
    run_once()
    schedule.every(interval).minutes.do(run_once, force_refresh=True)
    while True:
        schedule.run_pending()
        time.sleep(5)


if __name__ == "__main__":
    mode = (os.environ.get("REFRESH_MODE") or "once").lower().strip()
    if mode in ("scheduled", "daemon"):
        run_scheduled()
    else:
        sys.exit(run_once(force_refresh=mode == "force"))
