"""Upstream content sources normalized into cache item dictionaries."""

from __future__ import annotations

import logging
from typing import Any, Final, Protocol

import httpx

from daystart.config import Settings

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS: Final[float] = 15.0


class ContentSource(Protocol):
  """One upstream API producing items of a single content type."""

  name: str
  content_type: str

  async def fetch(self, selector: str) -> list[dict[str, Any]]:
    """Return normalized items for the selector; raise on upstream failure."""


class _HttpSource:
  """Shared httpx plumbing; an injected client keeps tests off the network."""

  name = "http"
  content_type = "news"

  def __init__(self, client: httpx.AsyncClient | None = None) -> None:
    self._client = client

  async def _get_json(self, url: str, *, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> Any:
    if self._client is not None:
      response = await self._client.get(url, params=params, headers=headers)
      response.raise_for_status()
      return response.json()

    async with httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT_SECONDS) as client:
      response = await client.get(url, params=params, headers=headers)
      response.raise_for_status()
      return response.json()


def _article_item(article: dict[str, Any], *, source_name: str | None) -> dict[str, Any] | None:
  title = (article.get("title") or "").strip()
  if not title or title == "[Removed]":
    return None
  return {
    "title": title,
    "description": (article.get("description") or "").strip() or None,
    "url": article.get("url"),
    "source": source_name,
    "published_at": article.get("publishedAt"),
    "scope": "national",
  }


class NewsApiSource(_HttpSource):
  name = "newsapi"
  content_type = "news"

  def __init__(self, api_key: str, client: httpx.AsyncClient | None = None) -> None:
    super().__init__(client)
    self._api_key = api_key

  async def fetch(self, selector: str) -> list[dict[str, Any]]:
    payload = await self._get_json("https://newsapi.org/v2/top-headlines", params={"country": selector, "pageSize": 20}, headers={"X-Api-Key": self._api_key})
    items = [_article_item(article, source_name=(article.get("source") or {}).get("name")) for article in payload.get("articles", [])]
    return [item for item in items if item]


class GNewsSource(_HttpSource):
  name = "gnews"
  content_type = "news"

  def __init__(self, api_key: str, client: httpx.AsyncClient | None = None) -> None:
    super().__init__(client)
    self._api_key = api_key

  async def fetch(self, selector: str) -> list[dict[str, Any]]:
    payload = await self._get_json("https://gnews.io/api/v4/top-headlines", params={"country": selector, "lang": "en", "max": 10, "apikey": self._api_key})
    items = [_article_item(article, source_name=(article.get("source") or {}).get("name")) for article in payload.get("articles", [])]
    return [item for item in items if item]


class YahooFinanceSource(_HttpSource):
  name = "yahoo_finance"
  content_type = "stocks"

  async def fetch(self, selector: str) -> list[dict[str, Any]]:
    payload = await self._get_json("https://query1.finance.yahoo.com/v7/finance/quote", params={"symbols": selector}, headers={"User-Agent": "Mozilla/5.0"})
    results = (payload.get("quoteResponse") or {}).get("result") or []
    items = []
    for quote in results:
      if quote.get("regularMarketPrice") is None:
        continue
      items.append(
        {
          "symbol": quote.get("symbol", selector),
          "name": quote.get("shortName") or quote.get("longName"),
          "price": quote.get("regularMarketPrice"),
          "change": quote.get("regularMarketChange"),
          "change_percent": quote.get("regularMarketChangePercent"),
          "currency": quote.get("currency"),
        }
      )
    return items


_ESPN_LEAGUES: Final[dict[str, tuple[str, str]]] = {
  "NFL": ("football", "nfl"),
  "NCAAF": ("football", "college-football"),
  "NBA": ("basketball", "nba"),
  "MLB": ("baseball", "mlb"),
  "NHL": ("hockey", "nhl"),
}


class EspnScoreboardSource(_HttpSource):
  name = "espn"
  content_type = "sports"

  async def fetch(self, selector: str) -> list[dict[str, Any]]:
    sport_league = _ESPN_LEAGUES.get(selector.upper())
    if sport_league is None:
      raise ValueError(f"Unsupported league: {selector}")
    sport, league = sport_league
    payload = await self._get_json(f"https://site.api.espn.com/apis/site/v2/sports/{sport}/{league}/scoreboard")
    items = []
    for event in payload.get("events", []):
      competition = (event.get("competitions") or [{}])[0]
      competitors = [{"team": (team.get("team") or {}).get("displayName"), "score": team.get("score"), "home": team.get("homeAway") == "home"} for team in competition.get("competitors", [])]
      items.append(
        {
          "league": selector.upper(),
          "event_id": event.get("id"),
          "name": event.get("name"),
          "status": ((event.get("status") or {}).get("type") or {}).get("description"),
          "start_time": event.get("date"),
          "competitors": competitors,
        }
      )
    return items


def build_sources(settings: Settings, client: httpx.AsyncClient | None = None) -> list[ContentSource]:
  """Return every source the current configuration can use."""
  sources: list[ContentSource] = []
  if settings.newsapi_key:
    sources.append(NewsApiSource(settings.newsapi_key, client))
  if settings.gnews_key:
    sources.append(GNewsSource(settings.gnews_key, client))
  if not sources:
    logger.warning("No news API keys configured; news will come from stale cache only.")
  sources.append(YahooFinanceSource(client))
  sources.append(EspnScoreboardSource(client))
  return sources
