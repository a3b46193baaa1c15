from datetime import timedelta
from unittest.mock import patch

import pytest

from daystart.content.cache import ContentCache
from daystart.content.refresh import REFRESH_TASK, ContentRefresher, CooldownActiveError, SelectorResolver
from tests.fakes import FakeSource, make_job


def _refresher(settings, content_repo, maintenance_repo, sources, jobs_repo=None):
  return ContentRefresher(sources=sources, content_repo=content_repo, maintenance_repo=maintenance_repo, selectors=SelectorResolver(settings, jobs_repo), settings=settings)


@pytest.mark.anyio
async def test_successful_cycle_stores_entries_and_starts_cooldown(settings, content_repo, maintenance_repo, now):
  source = FakeSource("yahoo", "stocks", [{"symbol": "^GSPC", "price": 5000}])
  refresher = _refresher(settings, content_repo, maintenance_repo, [source])

  with patch("daystart.content.refresh.utc_now", return_value=now):
    summary = await refresher.run_cycle(now=now)

  assert summary.succeeded == 1
  assert summary.failed == 0
  assert summary.freshness == {"stocks:^GSPC": "fresh"}
  assert [record.outcome for record in content_repo.fetch_log] == ["success"]
  assert maintenance_repo.runs[-1].task == REFRESH_TASK
  assert maintenance_repo.runs[-1].status == "success"

  with pytest.raises(CooldownActiveError) as excinfo:
    await refresher.run_cycle(now=now + timedelta(minutes=5))
  assert excinfo.value.retry_after_seconds == settings.content_refresh_cooldown_seconds - 300


@pytest.mark.anyio
async def test_failed_fetch_keeps_previous_entry(settings, content_repo, maintenance_repo, now):
  good = FakeSource("yahoo", "stocks", [{"symbol": "^GSPC", "price": 5000}])
  await _refresher(settings, content_repo, maintenance_repo, [good]).refresh("stocks", now=now)

  later = now + timedelta(hours=3)
  broken = FakeSource("yahoo", "stocks", error=RuntimeError("upstream 503"))
  records = await _refresher(settings, content_repo, maintenance_repo, [broken]).refresh("stocks", now=later)

  assert [(record.outcome, record.cached_age_hours) for record in records] == [("failed_used_cache", 3.0)]
  lookup = await ContentCache(content_repo, stale_retention=timedelta(hours=72)).get("stocks", "^GSPC", now=later)
  assert lookup.freshness == "stale"
  assert lookup.payload[0]["price"] == 5000


@pytest.mark.anyio
async def test_empty_response_counts_as_failure(settings, content_repo, maintenance_repo, now):
  empty = FakeSource("espn", "sports", [])

  records = await _refresher(settings, content_repo, maintenance_repo, [empty]).refresh("sports", now=now)

  assert {record.outcome for record in records} == {"failed_no_cache"}
  assert sorted(empty.selectors) == ["NBA", "NFL"]


@pytest.mark.anyio
async def test_all_failures_do_not_start_cooldown(settings, content_repo, maintenance_repo, now):
  broken = FakeSource("newsapi", "news", error=RuntimeError("quota"))
  refresher = _refresher(settings, content_repo, maintenance_repo, [broken])

  first = await refresher.run_cycle(now=now)
  second = await refresher.run_cycle(now=now + timedelta(minutes=1))

  assert first.succeeded == 0
  assert second.failed == 1
  assert maintenance_repo.runs[0].status == "failed"


@pytest.mark.anyio
async def test_stock_selectors_include_upcoming_job_symbols(settings, jobs_repo, now):
  from daystart.jobs.models import JobPreferences

  prefs = JobPreferences(timezone="UTC", stock_symbols=("AAPL", "TSLA"))
  await jobs_repo.create_job(make_job(now, preferences=prefs))
  await jobs_repo.create_job(make_job(now, job_id="far", user_id="u2", scheduled_at=now + timedelta(days=3), preferences=JobPreferences(timezone="UTC", stock_symbols=("NVDA",))))

  selectors = await SelectorResolver(settings, jobs_repo).selectors_for("stocks", now=now)

  assert selectors == ["AAPL", "TSLA", "^GSPC"]
