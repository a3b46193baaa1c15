from datetime import date, timedelta

import pytest

from daystart.content.cache import ContentCache, freshness_label
from daystart.content.curation import dedupe_items, rank_news, story_limits
from daystart.content.models import ContentEntry
from daystart.content.quotes import daily_quote, resolve_category


def _entry(now, *, source="newsapi", selector="us", fetched_hours_ago=1.0, ttl_hours=12, payload=None):
  fetched_at = now - timedelta(hours=fetched_hours_ago)
  return ContentEntry(content_type="news", selector=selector, source=source, payload=payload or [{"title": "Headline", "url": "https://example.com/a"}], fetched_at=fetched_at, expires_at=fetched_at + timedelta(hours=ttl_hours))


@pytest.mark.anyio
async def test_fresh_entry_is_served_fresh(content_repo, now):
  await content_repo.save_entry(_entry(now, fetched_hours_ago=2))
  cache = ContentCache(content_repo, stale_retention=timedelta(hours=72))

  lookup = await cache.get("news", "us", now=now)

  assert lookup.freshness == "fresh"
  assert lookup.age_hours == 2.0
  assert lookup.sources == ("newsapi",)


@pytest.mark.anyio
async def test_expired_entry_is_served_stale_until_retention(content_repo, now):
  await content_repo.save_entry(_entry(now, fetched_hours_ago=20))
  cache = ContentCache(content_repo, stale_retention=timedelta(hours=72))

  stale = await cache.get("news", "us", now=now)
  gone = await cache.get("news", "us", now=now + timedelta(hours=60))

  assert stale.freshness == "stale"
  assert stale.payload[0]["title"] == "Headline"
  assert gone.freshness == "absent"
  assert gone.payload == []


@pytest.mark.anyio
async def test_sources_are_merged_and_deduplicated(content_repo, now):
  await content_repo.save_entry(_entry(now, source="newsapi", payload=[{"title": "Rates hold steady", "url": "https://www.example.com/rates/"}]))
  await content_repo.save_entry(_entry(now, source="gnews", fetched_hours_ago=0.5, payload=[{"title": "Rates Hold Steady!", "url": "https://other.example/x"}, {"title": "Storm nears coast"}]))
  cache = ContentCache(content_repo, stale_retention=timedelta(hours=72))

  lookup = await cache.get("news", "us", now=now)

  assert [item["title"] for item in lookup.payload] == ["Rates Hold Steady!", "Storm nears coast"]
  assert lookup.sources == ("gnews", "newsapi")


def test_freshness_labels(now):
  from daystart.content.models import ContentLookup, absent

  assert freshness_label(absent("news", "us")) == "missing"
  assert freshness_label(ContentLookup("news", "us", "fresh", [{}], now, 0.5)) == "fresh"
  assert freshness_label(ContentLookup("news", "us", "fresh", [{}], now, 3.0)) == "recent"
  assert freshness_label(ContentLookup("news", "us", "stale", [{}], now, 30.0)) == "critical"


def test_stock_and_sports_dedupe_keys():
  stocks = dedupe_items("stocks", [{"symbol": "aapl", "price": 1}, {"symbol": "AAPL", "price": 2}, {"symbol": "MSFT"}])
  sports = dedupe_items("sports", [{"league": "NBA", "event_id": "9"}, {"league": "NBA", "event_id": "9", "name": "dup"}])

  assert [item.get("price") for item in stocks] == [1, None]
  assert len(sports) == 1


def test_rank_news_prefers_local_breaking_recent(now):
  items = [
    {"title": "national", "scope": "national"},
    {"title": "local", "scope": "local"},
    {"title": "breaking", "scope": "national", "breaking": True, "published_at": (now - timedelta(minutes=30)).isoformat()},
  ]

  assert [item["title"] for item in rank_news(items, now)] == ["breaking", "local", "national"]


def test_story_limits_scale_with_duration():
  assert story_limits(60).news == 1
  assert story_limits(180).news == 2
  assert story_limits(300).stocks == 2
  assert story_limits(600).sports == 2


def test_daily_quote_is_stable_per_day_and_style():
  day = date(2026, 10, 19)

  assert daily_quote("stoic", day) == daily_quote("stoic", day)
  assert daily_quote("Zen", day) == daily_quote("mindfulness", day)
  assert resolve_category("unknown-style") == "inspirational"
  assert resolve_category(None) == "inspirational"
