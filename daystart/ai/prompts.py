"""Prompt assembly for briefing scripts."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from daystart.content.curation import StoryLimits
from daystart.content.models import ContentLookup
from daystart.jobs.models import JobPreferences

SYSTEM_PROMPT = "You are a professional morning briefing writer for a text-to-speech wake-up app. Follow the user instructions exactly and obey the output contract."

_STYLE_EXAMPLE = """EXAMPLE OF CORRECT STYLE (for a random listener, do not copy facts):
Good morning, Sam. Happy Tuesday. Skies are clear and you'll hit the mid-70s by lunch, so a light layer is perfect.
Your 9 a.m. product sync has shifted to 9:15, worth skimming the brief on the train.
Overnight, regulators approved the chip deal; markets are cautious, but futures are flat.
The Sparks edged Phoenix by two; the Dodgers host the Giants tonight.
"Discipline is remembering what you want." One focused block this morning will carry the day.
You've got this."""


def target_words(duration_seconds: int, words_per_minute: int) -> int:
  return round(duration_seconds / 60 * words_per_minute)


def max_tokens_for(duration_seconds: int, words_per_minute: int) -> int:
  """Output token ceiling with headroom over the word budget."""
  return max(300, min(3000, round(target_words(duration_seconds, words_per_minute) * 1.4)))


@dataclass
class BriefingContext:
  """Everything the prompt needs for one job."""

  preferences: JobPreferences
  local_date: date
  word_budget: int
  limits: StoryLimits
  lookups: dict[str, ContentLookup] = field(default_factory=dict)
  quote: str | None = None

  def stale_notes(self) -> dict[str, str]:
    return {name: stale_annotation(lookup) for name, lookup in self.lookups.items() if lookup.is_stale}

  def included(self) -> dict[str, bool]:
    prefs = self.preferences
    return {
      "weather": prefs.include_weather and bool(prefs.weather),
      "calendar": prefs.include_calendar and bool(prefs.calendar_events),
      "news": prefs.include_news and _has_payload(self.lookups.get("news")),
      "sports": prefs.include_sports and _has_payload(self.lookups.get("sports")),
      "stocks": prefs.include_stocks and _has_payload(self.lookups.get("stocks")),
      "quotes": prefs.include_quotes and self.quote is not None,
    }


def _has_payload(lookup: ContentLookup | None) -> bool:
  return lookup is not None and not lookup.is_absent and bool(lookup.payload)


def friendly_date(value: date) -> str:
  return f"{value:%A, %B} {value.day}"


def stale_annotation(lookup: ContentLookup) -> str:
  hours = max(1, round(lookup.age_hours or 0))
  unit = "hour" if hours == 1 else "hours"
  return f"this is {hours} {unit} old"


def _section_data(context: BriefingContext) -> dict[str, Any]:
  prefs = context.preferences
  included = context.included()
  data: dict[str, Any] = {
    "user": {"preferredName": prefs.preferred_name or "there", "timezone": prefs.timezone, "location": prefs.location},
    "date": {"iso": context.local_date.isoformat(), "friendly": friendly_date(context.local_date)},
    "duration": {"seconds": prefs.duration_seconds, "targetWords": context.word_budget},
    "limits": {"news": context.limits.news, "sports": context.limits.sports, "stocks": context.limits.stocks},
    "include": included,
  }
  stale = context.stale_notes()
  if included["weather"]:
    data["weather"] = prefs.weather
  if included["calendar"]:
    data["calendarEvents"] = list(prefs.calendar_events)
  for name, limit in (("news", context.limits.news), ("sports", context.limits.sports), ("stocks", context.limits.stocks)):
    if not included[name]:
      continue
    section: dict[str, Any] = {"items": context.lookups[name].payload[: limit * 3]}
    if name in stale:
      section["freshness"] = stale[name]
    if name == "stocks":
      section["focusSymbols"] = list(prefs.stock_symbols)
    data[name] = section
  if included["quotes"]:
    data["quote"] = context.quote
  return data


def build_script_prompt(context: BriefingContext) -> str:
  """Render the user prompt with style rules, pacing, order and the JSON data block."""
  budget = context.word_budget
  lower, upper = round(budget * 0.9), round(budget * 1.1)
  limits = context.limits
  stale = context.stale_notes()
  stale_rules = "\n".join(f"- The {name} data is not current ({note}). Say so naturally when you mention it, for example \"as of {note.removeprefix('this is ')}\"." for name, note in sorted(stale.items()))
  data = _section_data(context)

  return f"""
Write a concise, warm, highly personalized morning briefing that sounds natural when spoken aloud.

STYLE
- Warm, conversational, confident; no filler.
- Use short sentences and varied rhythm.
- Prefer specifics over generalities. If a section is not listed in the data, skip it entirely.
- One light, human moment at most.

LENGTH & PACING
- Target {budget} words total. Keep between {lower} and {upper} words.
- Shorter briefings get headlines only; longer briefings add context.

CONTENT PRIORITIZATION
- News: {limits.news} stories max, already sorted by relevance.
- Sports: {limits.sports} update(s) max.
- Stocks: {limits.stocks} market point(s) max. Call out focus symbols when present.

DATA FRESHNESS
{stale_rules or "- All data is current."}

CONTENT ORDER (skip missing sections)
1) One-line greeting using the listener's name and the day.
2) Weather.
3) Calendar: the one or two most important items.
4) News.
5) Sports.
6) Stocks.
7) Quote, then a one-line tie-back to the day.
8) Close with a crisp, motivating line.

STRICT OUTPUT RULES
- Plain text only. No markdown, asterisks, headings, brackets, stage directions or emojis.
- No labels like "Weather:" or "News:".
- No meta-commentary.

{_STYLE_EXAMPLE}

DATA YOU CAN USE (JSON):
{json.dumps(data, indent=2, default=str)}

Write the final script now. Return only the script text.
""".strip()
