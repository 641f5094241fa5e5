"""Tag log view state and chart data."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional, Sequence, Set, Tuple

from craftboard.analytics.tag_logs import TagLogLoader
from craftboard.analytics.tags import Segment, filter_allowed_lines, normalize_tag, segment, tag_hue
from craftboard.analytics.time_buckets import (
    Buckets,
    bar_heights,
    bucketize,
    filter_buckets,
    max_bucket_total,
    rank_tags,
)
from craftboard.errors import CraftboardError
from craftboard.ingestion.record_types import LogEntry
from craftboard.views.observable import LoadingRegistry, Observable

logger = logging.getLogger(__name__)

LOADER_ID = "tags"


@dataclass(frozen=True)
class ChartData:
    granularity: str
    buckets: Buckets
    max_total: int
    heights: Dict[str, float]


class TagsView(Observable):
    def __init__(
        self,
        loader: TagLogLoader,
        tags: Sequence[str],
        *,
        registry: Optional[LoadingRegistry] = None,
        tz: tzinfo = timezone.utc,
        expand_blocks: bool = False,
    ):
        super().__init__()
        self.loader = loader
        self.tags = [normalize_tag(t) for t in tags if normalize_tag(t)]
        self.registry = registry
        self.tz = tz
        self.expand_blocks = expand_blocks

        self.logs: List[LogEntry] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.active_filters: Set[str] = set()

    def _set(self, field: str, value) -> None:
        setattr(self, field, value)
        self.publish(field)

    async def refresh(self, force_refresh: bool = False) -> None:
        if not self.tags:
            self._set("logs", [])
            return

        self._set("is_loading", True)
        self._set("error", None)
        if self.registry:
            self.registry.start(LOADER_ID)
        try:
            logs = await asyncio.to_thread(
                self.loader.load_logs, self.tags, force_refresh, expand_blocks=self.expand_blocks
            )
            self._set("logs", logs)
        except CraftboardError as e:
            logger.error(f"Failed to load logs: {e}")
            self._set("error", str(e))
        finally:
            self._set("is_loading", False)
            if self.registry:
                self.registry.stop(LOADER_ID)

    def toggle_filter(self, tag: str) -> None:
        tag = normalize_tag(tag)
        if tag in self.active_filters:
            self.active_filters.remove(tag)
        else:
            self.active_filters.add(tag)
        self.publish("active_filters")

    # -----------------------------
    # Derived data
    # -----------------------------
    def filtered_logs(self) -> List[LogEntry]:
        if not self.active_filters:
            return list(self.logs)
        return [e for e in self.logs if any(t in self.active_filters for t in e.tags)]

    def chart(self, granularity: str, *, now: Optional[datetime] = None) -> ChartData:
        buckets = filter_buckets(
            bucketize(self.logs, granularity, now=now, tz=self.tz),
            sorted(self.active_filters),
        )
        return ChartData(
            granularity=granularity,
            buckets=buckets,
            max_total=max_bucket_total(buckets),
            heights=bar_heights(buckets),
        )

    def ranked_tags(self) -> List[Tuple[str, int]]:
        return rank_tags(self.logs)

    def tag_list(self) -> List[str]:
        return sorted({t for e in self.logs for t in e.tags})

    def tag_color(self, tag: str) -> int:
        return tag_hue(tag, self.tag_list())

    def visible_markdown(self, entry: LogEntry) -> str:
        return filter_allowed_lines(entry.markdown, entry.tags)

    def segments(self, entry: LogEntry) -> List[Segment]:
        return segment(self.visible_markdown(entry), entry.tags)
