"""Read side of the content cache: freshness classification across sources."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from daystart.content.curation import dedupe_items
from daystart.content.models import ContentEntry, ContentLookup, absent
from daystart.storage.content_repo import ContentRepository
from daystart.utils.time import hours_between, utc_now

logger = logging.getLogger(__name__)


class ContentCache:
  """Serve the newest committed content per key, classified fresh, stale or absent."""

  def __init__(self, repo: ContentRepository, *, stale_retention: timedelta) -> None:
    self._repo = repo
    self._stale_retention = stale_retention

  async def get(self, content_type: str, selector: str, *, now: datetime | None = None) -> ContentLookup:
    now = now or utc_now()
    entries = [entry for entry in await self._repo.latest_entries(content_type, selector) if entry.fetched_at > now - self._stale_retention]
    if not entries:
      return absent(content_type, selector)

    fresh = [entry for entry in entries if not entry.is_expired(now)]
    usable = fresh or entries
    # Newest first so deduplication keeps the most recent copy of each item.
    usable.sort(key=lambda entry: entry.fetched_at, reverse=True)
    newest = usable[0].fetched_at
    payload = dedupe_items(content_type, (item for entry in usable for item in entry.payload))
    freshness = "fresh" if fresh else "stale"
    if freshness == "stale":
      logger.info("Serving stale %s/%s content fetched at %s", content_type, selector, newest.isoformat())
    return ContentLookup(
      content_type=content_type,
      selector=selector,
      freshness=freshness,
      payload=payload,
      fetched_at=newest,
      age_hours=round(hours_between(newest, now), 1),
      sources=tuple(_source_names(usable)),
    )

  async def get_many(self, content_type: str, selectors: list[str], *, now: datetime | None = None) -> list[ContentLookup]:
    now = now or utc_now()
    return [await self.get(content_type, selector, now=now) for selector in selectors]


def _source_names(entries: list[ContentEntry]) -> list[str]:
  return sorted({entry.source for entry in entries})


def freshness_label(lookup: ContentLookup) -> str:
  """Coarse operator-facing label used in refresh summaries."""
  if lookup.is_absent or lookup.age_hours is None:
    return "missing"
  if lookup.age_hours < 1:
    return "fresh"
  if lookup.age_hours < 6:
    return "recent"
  if lookup.age_hours < 24:
    return "stale"
  return "critical"
