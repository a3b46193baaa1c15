"""Write side of the content cache: periodic refresh across every source."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from daystart.config import Settings
from daystart.content.cache import ContentCache, freshness_label
from daystart.content.models import CONTENT_TTL, CONTENT_TYPES, ContentEntry, FetchLogRecord
from daystart.content.sources import ContentSource
from daystart.storage.content_repo import ContentRepository
from daystart.storage.jobs_repo import JobsRepository
from daystart.storage.maintenance_repo import MaintenanceRepository, MaintenanceRunRecord
from daystart.utils.time import hours_between, utc_now

logger = logging.getLogger(__name__)

REFRESH_TASK = "content_refresh"
_FETCH_TIMEOUT_SECONDS = 30
_CLAIM_SECONDS = 600
_SYMBOL_HORIZON_HOURS = 36


class CooldownActiveError(RuntimeError):
  """Raised when a rate-limited maintenance task was triggered too soon."""

  def __init__(self, task: str, retry_after_seconds: int) -> None:
    super().__init__(f"{task} ran recently; retry in {retry_after_seconds}s")
    self.task = task
    self.retry_after_seconds = retry_after_seconds


@dataclass
class RefreshSummary:
  started_at: datetime
  finished_at: datetime
  fetches: list[FetchLogRecord] = field(default_factory=list)
  purged: int = 0
  freshness: dict[str, str] = field(default_factory=dict)

  @property
  def succeeded(self) -> int:
    return sum(1 for record in self.fetches if record.outcome == "success")

  @property
  def failed(self) -> int:
    return len(self.fetches) - self.succeeded


class SelectorResolver:
  """Decide which keys each content type is refreshed for."""

  def __init__(self, settings: Settings, jobs_repo: JobsRepository | None = None) -> None:
    self._settings = settings
    self._jobs_repo = jobs_repo

  async def selectors_for(self, content_type: str, *, now: datetime) -> list[str]:
    if content_type == "news":
      return list(self._settings.news_regions)
    if content_type == "sports":
      return list(self._settings.sports_leagues)
    if content_type == "stocks":
      symbols = set(self._settings.market_symbols)
      if self._jobs_repo is not None:
        symbols |= await self._jobs_repo.upcoming_stock_symbols(now=now, horizon_hours=_SYMBOL_HORIZON_HOURS)
      return sorted(symbols)
    return []


class ContentRefresher:
  """Fetch every source, append fresh entries and keep the previous ones on failure."""

  def __init__(self, *, sources: list[ContentSource], content_repo: ContentRepository, maintenance_repo: MaintenanceRepository, selectors: SelectorResolver, settings: Settings, ttl: dict[str, timedelta] | None = None) -> None:
    self._sources = sources
    self._content_repo = content_repo
    self._maintenance_repo = maintenance_repo
    self._selectors = selectors
    self._settings = settings
    self._ttl = {**CONTENT_TTL, **(ttl or {})}
    self._stale_retention = timedelta(hours=settings.content_stale_retention_hours)

  async def refresh(self, content_type: str, *, now: datetime | None = None) -> list[FetchLogRecord]:
    """Refresh every source of one content type for every selector."""
    now = now or utc_now()
    sources = [source for source in self._sources if source.content_type == content_type]
    if not sources:
      return []
    selectors = await self._selectors.selectors_for(content_type, now=now)
    tasks = [self._refresh_one(source, selector, now=now) for source in sources for selector in selectors]
    return list(await asyncio.gather(*tasks))

  async def run_cycle(self, *, now: datetime | None = None) -> RefreshSummary:
    """Run one rate-limited refresh across all content types."""
    now = now or utc_now()
    cooldown = self._settings.content_refresh_cooldown_seconds
    claimed = await self._maintenance_repo.try_claim(REFRESH_TASK, now=now, min_interval_seconds=cooldown, claim_seconds=_CLAIM_SECONDS)
    if not claimed:
      raise CooldownActiveError(REFRESH_TASK, await self._retry_after(now, cooldown))

    summary = RefreshSummary(started_at=now, finished_at=now)
    success = False
    try:
      for content_type in CONTENT_TYPES:
        summary.fetches.extend(await self.refresh(content_type, now=now))
      summary.purged = await self._content_repo.purge_fetched_before(now - self._stale_retention)
      summary.freshness = await self._freshness(summary.fetches, now=now)
      # A cycle where every upstream failed does not start the cooldown.
      success = summary.succeeded > 0 or not summary.fetches
    finally:
      finished = utc_now()
      summary.finished_at = finished
      await self._maintenance_repo.release(REFRESH_TASK, now=now, success=success)
      await self._maintenance_repo.record_run(MaintenanceRunRecord(task=REFRESH_TASK, started_at=now, finished_at=finished, status="success" if success else "failed", details=_run_details(summary)))

    logger.info("Content refresh finished: %s fetched, %s failed, %s purged", summary.succeeded, summary.failed, summary.purged)
    return summary

  async def _refresh_one(self, source: ContentSource, selector: str, *, now: datetime) -> FetchLogRecord:
    try:
      items = await asyncio.wait_for(source.fetch(selector), timeout=_FETCH_TIMEOUT_SECONDS)
      if not items:
        raise ValueError("empty response")
    except Exception as exc:  # noqa: BLE001
      # The previous entry is left in place; readers will see it as stale once it expires.
      previous = [entry for entry in await self._content_repo.latest_entries(source.content_type, selector) if entry.source == source.name]
      cached_age = round(hours_between(previous[0].fetched_at, now), 1) if previous else None
      outcome = "failed_used_cache" if previous else "failed_no_cache"
      logger.warning("Content fetch failed source=%s selector=%s outcome=%s error=%s", source.name, selector, outcome, exc)
      record = FetchLogRecord(source=source.name, content_type=source.content_type, selector=selector, outcome=outcome, item_count=0, created_at=now, error=str(exc) or type(exc).__name__, cached_age_hours=cached_age)
      await self._content_repo.record_fetch(record)
      return record

    ttl = self._ttl.get(source.content_type, timedelta(hours=12))
    await self._content_repo.save_entry(ContentEntry(content_type=source.content_type, selector=selector, source=source.name, payload=items, fetched_at=now, expires_at=now + ttl))
    record = FetchLogRecord(source=source.name, content_type=source.content_type, selector=selector, outcome="success", item_count=len(items), created_at=now)
    await self._content_repo.record_fetch(record)
    return record

  async def _freshness(self, fetches: list[FetchLogRecord], *, now: datetime) -> dict[str, str]:
    cache = ContentCache(self._content_repo, stale_retention=self._stale_retention)
    labels: dict[str, str] = {}
    for content_type, selector in sorted({(record.content_type, record.selector) for record in fetches}):
      labels[f"{content_type}:{selector}"] = freshness_label(await cache.get(content_type, selector, now=now))
    return labels

  async def _retry_after(self, now: datetime, cooldown: int) -> int:
    marker = await self._maintenance_repo.get_marker(REFRESH_TASK)
    if marker is None or marker.last_success_at is None:
      return _CLAIM_SECONDS
    remaining = (marker.last_success_at + timedelta(seconds=cooldown) - now).total_seconds()
    return max(1, int(remaining))


def _run_details(summary: RefreshSummary) -> dict[str, Any]:
  return {"succeeded": summary.succeeded, "failed": summary.failed, "purged": summary.purged, "freshness": summary.freshness}
