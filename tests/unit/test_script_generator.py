from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from daystart.ai.errors import ScriptGenerationError, StageTimeoutError
from daystart.ai.prompts import max_tokens_for, stale_annotation, target_words
from daystart.ai.script_generator import ScriptGenerator, script_cost
from daystart.ai.text import sanitize_for_tts, sanitize_name
from daystart.content.models import ContentEntry, ContentLookup
from daystart.jobs.models import JobPreferences
from daystart.services.pipeline import build_content_cache
from tests.fakes import FakeScriptModel, make_job


def _generator(settings, content_repo, model):
  return ScriptGenerator(model, build_content_cache(settings, content_repo), settings)


@pytest.mark.anyio
async def test_short_script_without_content_is_topped_up(settings, content_repo, now):
  model = FakeScriptModel("Good morning.")
  job = make_job(now, preferences=JobPreferences(timezone="America/New_York", preferred_name="Sam"))

  result = await _generator(settings, content_repo, model).generate(job, now=now)

  assert result.characters >= settings.min_script_chars
  assert result.script.startswith("Good morning.")
  assert result.script.endswith("That's your DayStart. Make it a good one.")
  assert result.omitted_categories == ("weather", "news", "sports", "stocks")
  assert result.cost_usd == Decimal("0.060000")
  assert model.max_tokens == [max_tokens_for(180, settings.words_per_minute)]


@pytest.mark.anyio
async def test_stale_news_is_annotated_in_prompt(settings, content_repo, now):
  fetched_at = now - timedelta(hours=5)
  await content_repo.save_entry(ContentEntry(content_type="news", selector="us", source="newsapi", payload=[{"title": "Council approves budget"}], fetched_at=fetched_at, expires_at=now - timedelta(hours=1)))
  model = FakeScriptModel("Good morning. " + "The council approved the new budget last night. " * 20)
  prefs = JobPreferences(timezone="UTC", include_sports=False, include_stocks=False)

  result = await _generator(settings, content_repo, model).generate(make_job(now, preferences=prefs), now=now)

  prompt = model.prompts[0]
  assert "this is 5 hours old" in prompt
  assert "Council approves budget" in prompt
  assert result.stale_categories == ("news",)
  assert "news" not in result.omitted_categories


@pytest.mark.anyio
async def test_stale_stocks_with_fresh_news_caveats_only_stocks(settings, content_repo, now):
  await content_repo.save_entry(ContentEntry(content_type="news", selector="us", source="newsapi", payload=[{"title": "Bridge reopens downtown"}], fetched_at=now - timedelta(minutes=20), expires_at=now + timedelta(hours=1)))
  await content_repo.save_entry(ContentEntry(content_type="stocks", selector="^GSPC", source="quotes", payload=[{"symbol": "^GSPC", "price": 5120.5}], fetched_at=now - timedelta(hours=3), expires_at=now - timedelta(hours=2)))
  model = FakeScriptModel("Good morning. " + "The bridge reopened and markets were calm as of three hours ago. " * 15)
  prefs = JobPreferences(timezone="UTC", include_sports=False)

  result = await _generator(settings, content_repo, model).generate(make_job(now, preferences=prefs), now=now)

  prompt = model.prompts[0]
  assert "Bridge reopens downtown" in prompt
  assert '"symbol": "^GSPC"' in prompt
  assert "The stocks data is not current (this is 3 hours old)" in prompt
  assert "The news data is not current" not in prompt
  assert prompt.count('"freshness":') == 1
  assert result.stale_categories == ("stocks",)
  assert "news" not in result.omitted_categories
  assert "stocks" not in result.omitted_categories


@pytest.mark.anyio
async def test_weather_and_calendar_reach_the_prompt(settings, content_repo, now):
  model = FakeScriptModel("Good morning. " + "It will be a bright day across town. " * 30)
  prefs = JobPreferences(timezone="UTC", include_calendar=True, calendar_events=("Dentist at 9",), weather={"condition": "Sunny", "high": 72})

  await _generator(settings, content_repo, model).generate(make_job(now, preferences=prefs), now=now)

  assert '"Dentist at 9"' in model.prompts[0]
  assert '"condition": "Sunny"' in model.prompts[0]


@pytest.mark.anyio
async def test_model_timeout_raises_stage_timeout(settings, content_repo, now):
  model = FakeScriptModel(delay=1.0)
  generator = _generator(replace(settings, script_timeout_seconds=0.05), content_repo, model)

  with pytest.raises(StageTimeoutError) as excinfo:
    await generator.generate(make_job(now), now=now)
  assert excinfo.value.stage == "script"


@pytest.mark.anyio
async def test_model_error_and_empty_output_raise(settings, content_repo, now):
  with pytest.raises(ScriptGenerationError):
    await _generator(settings, content_repo, FakeScriptModel(error=RuntimeError("rate limited"))).generate(make_job(now), now=now)
  with pytest.raises(ScriptGenerationError):
    await _generator(settings, content_repo, FakeScriptModel("   ")).generate(make_job(now), now=now)


def test_token_budget_is_bounded():
  assert target_words(180, 145) == 435
  assert max_tokens_for(30, 145) == 300
  assert max_tokens_for(900, 400) == 3000


def test_script_cost_rounds_to_micro_dollars():
  assert script_cost(1_000_000, 0) == Decimal("30.000000")
  assert script_cost(1, 1) == Decimal("0.000090")


def test_stale_annotation_wording(now):
  one = ContentLookup("stocks", "^GSPC", "stale", [{}], now, 0.6)
  many = ContentLookup("stocks", "^GSPC", "stale", [{}], now, 26.2)

  assert stale_annotation(one) == "this is 1 hour old"
  assert stale_annotation(many) == "this is 26 hours old"


def test_sanitize_for_tts_strips_markup():
  raw = "Good morning, Sam! Good morning again.\n**News:** [pause] Rates held steady.\n\n# Sports: The Sparks won."

  assert sanitize_for_tts(raw) == "Good morning, Sam! Rates held steady. The Sparks won."


def test_sanitize_name_drops_emoji_and_truncates():
  assert sanitize_name("  Sam 🌞 ") == "Sam"
  assert sanitize_name("🌞🌞") is None
  assert sanitize_name(None) is None
  assert len(sanitize_name("x" * 80)) == 50
