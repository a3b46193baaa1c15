"""Cross-source deduplication, news ranking and per-duration story limits."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from daystart.utils.time import hours_between, parse_instant

_NON_WORD = re.compile(r"[^a-z0-9]+")

_SCOPE_SCORES = {"local": 100, "regional": 80, "national": 60}
_DEFAULT_SCOPE_SCORE = 40


@dataclass(frozen=True)
class StoryLimits:
  news: int
  sports: int
  stocks: int


def story_limits(duration_seconds: int) -> StoryLimits:
  """Scale how many stories each category gets with the briefing length."""
  if duration_seconds <= 60:
    return StoryLimits(news=1, sports=1, stocks=1)
  if duration_seconds <= 180:
    return StoryLimits(news=2, sports=1, stocks=1)
  if duration_seconds <= 300:
    return StoryLimits(news=3, sports=1, stocks=2)
  return StoryLimits(news=4, sports=2, stocks=2)


def normalize_title(title: str) -> str:
  return _NON_WORD.sub(" ", title.lower()).strip()


def _normalize_url(url: str) -> str:
  parts = urlsplit(url.strip().lower())
  return f"{parts.netloc.removeprefix('www.')}{parts.path.rstrip('/')}"


def _news_keys(item: dict[str, Any]) -> list[str]:
  keys = []
  if item.get("url"):
    keys.append(f"url:{_normalize_url(str(item['url']))}")
  if item.get("title"):
    keys.append(f"title:{normalize_title(str(item['title']))}")
  return keys


def _stock_keys(item: dict[str, Any]) -> list[str]:
  return [f"symbol:{str(item.get('symbol', '')).upper()}"]


def _sports_keys(item: dict[str, Any]) -> list[str]:
  if item.get("event_id"):
    return [f"event:{item['league']}:{item['event_id']}"]
  return [f"name:{item.get('league', '')}:{normalize_title(str(item.get('name', '')))}"]


def _default_keys(item: dict[str, Any]) -> list[str]:
  return [json.dumps(item, sort_keys=True, default=str)]


_KEY_FUNCTIONS: dict[str, Callable[[dict[str, Any]], list[str]]] = {"news": _news_keys, "stocks": _stock_keys, "sports": _sports_keys}


def dedupe_items(content_type: str, items: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
  """Drop items that another source already reported; the first occurrence wins."""
  key_function = _KEY_FUNCTIONS.get(content_type, _default_keys)
  seen: set[str] = set()
  unique: list[dict[str, Any]] = []
  for item in items:
    keys = key_function(item)
    if any(key in seen for key in keys):
      continue
    seen.update(keys)
    unique.append(item)
  return unique


def news_score(item: dict[str, Any], now: datetime) -> int:
  score = _SCOPE_SCORES.get(str(item.get("scope") or "").lower(), _DEFAULT_SCOPE_SCORE)
  if item.get("breaking"):
    score += 50
  if str(item.get("impact") or "").lower() == "high":
    score += 30
  published = item.get("published_at")
  if published:
    try:
      age = hours_between(parse_instant(str(published)), now)
    except ValueError:
      age = None
    if age is not None and age < 2:
      score += 20
    elif age is not None and age < 6:
      score += 10
  return score


def rank_news(items: list[dict[str, Any]], now: datetime) -> list[dict[str, Any]]:
  """Order news by relevance score; ties keep their incoming order."""
  return sorted(items, key=lambda item: -news_score(item, now))
