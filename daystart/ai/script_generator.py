"""Briefing script generation from preferences and cached content."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from daystart.ai.errors import ScriptGenerationError, StageTimeoutError
from daystart.ai.prompts import SYSTEM_PROMPT, BriefingContext, build_script_prompt, friendly_date, max_tokens_for, target_words
from daystart.ai.providers.base import ScriptModel
from daystart.ai.text import sanitize_for_tts
from daystart.config import Settings
from daystart.content.cache import ContentCache
from daystart.content.curation import dedupe_items, rank_news, story_limits
from daystart.content.models import ContentLookup, absent
from daystart.content.quotes import daily_quote
from daystart.jobs.models import JobRecord
from daystart.utils.time import utc_now

logger = logging.getLogger(__name__)

_INPUT_COST_PER_MILLION = Decimal("30")
_OUTPUT_COST_PER_MILLION = Decimal("60")
_COST_QUANTUM = Decimal("0.000001")

_MORNING_NOTES = (
  "Take a slow breath before the day picks up speed. A calm first few minutes tend to set the tone for everything after.",
  "If there is one task you have been putting off, consider giving it the first fifteen minutes of your focus today.",
  "A glass of water and a few minutes of daylight are two of the simplest ways to wake your body up properly.",
  "Try to pick one thing that would make today feel like a win, and keep it in mind as the hours go by.",
  "Remember to leave a little room in your schedule. Not every minute needs to be spoken for to have a productive day.",
  "Small steps still count. Whatever is on your plate, steady progress beats waiting for the perfect moment.",
  "Check in with someone you care about today, even a short message can brighten both of your mornings.",
  "Before you dive in, take a moment to stretch, roll your shoulders and get ready to move.",
)


@dataclass(frozen=True)
class ScriptResult:
  script: str
  characters: int
  input_tokens: int
  output_tokens: int
  cost_usd: Decimal
  model: str
  stale_categories: tuple[str, ...] = ()
  omitted_categories: tuple[str, ...] = ()


def script_cost(input_tokens: int, output_tokens: int) -> Decimal:
  cost = Decimal(input_tokens) * _INPUT_COST_PER_MILLION / Decimal(1_000_000) + Decimal(output_tokens) * _OUTPUT_COST_PER_MILLION / Decimal(1_000_000)
  return cost.quantize(_COST_QUANTUM, rounding=ROUND_HALF_UP)


def _merge_lookups(content_type: str, lookups: list[ContentLookup]) -> ContentLookup:
  """Combine per-selector lookups into one category view; stale if any part is stale."""
  present = [lookup for lookup in lookups if not lookup.is_absent]
  if not present:
    return absent(content_type, ",".join(lookup.selector for lookup in lookups))
  stale = [lookup for lookup in present if lookup.is_stale]
  oldest = max((lookup.age_hours or 0.0) for lookup in (stale or present))
  return ContentLookup(
    content_type=content_type,
    selector=",".join(lookup.selector for lookup in present),
    freshness="stale" if stale else "fresh",
    payload=dedupe_items(content_type, (item for lookup in present for item in lookup.payload)),
    fetched_at=min(lookup.fetched_at for lookup in present if lookup.fetched_at is not None),
    age_hours=oldest,
    sources=tuple(sorted({source for lookup in present for source in lookup.sources})),
  )


class ScriptGenerator:
  """Build the prompt, call the script model and enforce the spoken-length floor."""

  def __init__(self, model: ScriptModel, cache: ContentCache, settings: Settings) -> None:
    self._model = model
    self._cache = cache
    self._settings = settings

  async def build_context(self, job: JobRecord, *, now: datetime | None = None) -> BriefingContext:
    now = now or utc_now()
    prefs = job.preferences
    duration = prefs.duration_seconds
    lookups: dict[str, ContentLookup] = {}
    if prefs.include_news:
      news = _merge_lookups("news", await self._cache.get_many("news", list(self._settings.news_regions), now=now))
      if not news.is_absent:
        news = replace(news, payload=rank_news(news.payload, now))
      lookups["news"] = news
    if prefs.include_sports:
      leagues = [league for league in prefs.selected_sports if league in self._settings.sports_leagues] or list(self._settings.sports_leagues)
      lookups["sports"] = _merge_lookups("sports", await self._cache.get_many("sports", leagues, now=now))
    if prefs.include_stocks:
      symbols = list(prefs.stock_symbols) or list(self._settings.market_symbols)
      lookups["stocks"] = _merge_lookups("stocks", await self._cache.get_many("stocks", symbols, now=now))

    local_date = date.fromisoformat(job.local_date)
    quote = daily_quote(prefs.quote_style, local_date) if prefs.include_quotes else None
    return BriefingContext(preferences=prefs, local_date=local_date, word_budget=target_words(duration, self._settings.words_per_minute), limits=story_limits(duration), lookups=lookups, quote=quote)

  async def generate(self, job: JobRecord, *, now: datetime | None = None) -> ScriptResult:
    """Generate a spoken script for the job; raises on model errors and timeouts."""
    context = await self.build_context(job, now=now)
    prompt = build_script_prompt(context)
    max_tokens = max_tokens_for(job.preferences.duration_seconds, self._settings.words_per_minute)
    timeout = self._settings.script_timeout_seconds
    logger.info("Generating script for job %s (%s words, %s chars prompt)", job.job_id, context.word_budget, len(prompt))

    try:
      response = await asyncio.wait_for(self._model.generate(prompt, system=SYSTEM_PROMPT, max_tokens=max_tokens), timeout=timeout)
    except asyncio.TimeoutError as exc:
      raise StageTimeoutError("script", timeout) from exc
    except Exception as exc:  # noqa: BLE001
      raise ScriptGenerationError(f"Script model {self._model.name} failed: {exc}") from exc

    raw = (response.content or "").strip()
    if not raw:
      raise ScriptGenerationError(f"Script model {self._model.name} returned an empty script")

    script = self.ensure_floor(sanitize_for_tts(raw), context)
    usage = response.usage or {}
    input_tokens = int(usage.get("prompt_tokens", 0))
    output_tokens = int(usage.get("completion_tokens", 0))
    included = context.included()
    omitted = tuple(name for name in job.preferences.enabled_categories() if not included.get(name, False))
    if omitted:
      logger.info("Job %s omits categories without data: %s", job.job_id, ", ".join(omitted))

    return ScriptResult(
      script=script,
      characters=len(script),
      input_tokens=input_tokens,
      output_tokens=output_tokens,
      cost_usd=script_cost(input_tokens, output_tokens),
      model=self._model.name,
      stale_categories=tuple(sorted(context.stale_notes())),
      omitted_categories=omitted,
    )

  def ensure_floor(self, script: str, context: BriefingContext) -> str:
    """Top up short scripts with deterministic spoken sections until the floor is met."""
    floor = self._settings.min_script_chars
    if len(script) >= floor:
      return script

    prefs = context.preferences
    name = prefs.preferred_name or "there"
    parts: list[str] = []
    if "good morning" not in script.lower():
      parts.append(f"Good morning, {name}. Happy {friendly_date(context.local_date)}.")
    if script:
      parts.append(script)
    included = context.included()
    if included["weather"] and prefs.weather:
      parts.append(_weather_line(prefs.weather))
    if included["calendar"]:
      events = list(prefs.calendar_events)[:2]
      parts.append(f"On your calendar today: {' and '.join(events)}.")
    if context.quote and context.quote not in script:
      parts.append(f"Here is a thought to carry with you. {context.quote}")

    closing = "That's your DayStart. Make it a good one."
    notes = itertools.cycle(_MORNING_NOTES)
    for _ in range(len(_MORNING_NOTES) * 3):
      if len(" ".join([*parts, closing])) >= floor:
        break
      parts.append(next(notes))
    logger.info("Script below %s characters, topped up with standard sections", floor)
    return sanitize_for_tts(" ".join([*parts, closing]))


def _weather_line(weather: dict) -> str:
  condition = weather.get("condition") or weather.get("summary")
  high = weather.get("high") or weather.get("temperature_high")
  low = weather.get("low") or weather.get("temperature_low")
  pieces = []
  if condition:
    pieces.append(f"expect {str(condition).lower()}")
  if high is not None:
    pieces.append(f"a high near {high}")
  if low is not None:
    pieces.append(f"a low around {low}")
  if not pieces:
    return "Take a quick look outside before you head out."
  return f"For the weather today, {', '.join(pieces)}."
