from datetime import UTC, datetime, timedelta

import pytest

from daystart.jobs.backoff import next_attempt_at, retry_delay_seconds
from daystart.jobs.priority import PRIORITY_BACKGROUND, PRIORITY_REGULAR, PRIORITY_URGENT, PRIORITY_WELCOME, compute_priority
from daystart.jobs.state import TRANSITIONS, InvalidTransitionError, can_transition, client_status, ensure_transition, is_terminal, stage_for

NOW = datetime(2026, 10, 19, 11, 0, tzinfo=UTC)


def test_terminal_states_have_no_outgoing_edges():
  for status in ("ready", "failed", "failed_missed", "cancelled"):
    assert is_terminal(status)
    assert TRANSITIONS[status] == frozenset()


@pytest.mark.parametrize(
  ("current", "target"),
  [
    ("queued", "script_processing"),
    ("script_processing", "script_ready"),
    ("script_processing", "queued"),
    ("script_ready", "audio_processing"),
    ("audio_processing", "ready"),
    ("audio_processing", "script_ready"),
    ("queued", "cancelled"),
    ("script_ready", "failed_missed"),
  ],
)
def test_allowed_edges(current, target):
  assert can_transition(current, target)
  ensure_transition(current, target)


@pytest.mark.parametrize(("current", "target"), [("queued", "ready"), ("ready", "queued"), ("audio_processing", "cancelled"), ("failed", "queued")])
def test_rejected_edges(current, target):
  with pytest.raises(InvalidTransitionError) as excinfo:
    ensure_transition(current, target)
  assert excinfo.value.current == current
  assert excinfo.value.target == target


def test_client_status_hides_pipeline_states():
  assert client_status("script_processing") == "processing"
  assert client_status("script_ready") == "processing"
  assert client_status("audio_processing") == "processing"
  assert client_status("queued") == "queued"
  assert client_status("failed_missed") == "failed_missed"


def test_stage_for_rejects_idle_states():
  assert stage_for("script_processing") == "script"
  assert stage_for("audio_processing") == "audio"
  with pytest.raises(ValueError):
    stage_for("queued")


def test_priority_bands():
  assert compute_priority(scheduled_at=NOW + timedelta(days=3), now=NOW, is_welcome=True) == PRIORITY_WELCOME
  assert compute_priority(scheduled_at=NOW + timedelta(seconds=30), now=NOW) == PRIORITY_WELCOME
  assert compute_priority(scheduled_at=NOW - timedelta(hours=1), now=NOW) == PRIORITY_URGENT
  assert compute_priority(scheduled_at=NOW + timedelta(hours=3), now=NOW) == PRIORITY_URGENT
  assert compute_priority(scheduled_at=NOW + timedelta(hours=10), now=NOW) == PRIORITY_REGULAR
  assert compute_priority(scheduled_at=NOW + timedelta(hours=30), now=NOW) == PRIORITY_BACKGROUND


def test_retry_delay_grows_geometrically(settings):
  assert retry_delay_seconds(1, base_seconds=30, factor=4) == 30
  assert retry_delay_seconds(2, base_seconds=30, factor=4) == 120
  assert retry_delay_seconds(3, base_seconds=30, factor=4) == 480
  with pytest.raises(ValueError):
    retry_delay_seconds(0, base_seconds=30, factor=4)
  expected = NOW + timedelta(seconds=settings.retry_base_seconds * settings.retry_factor)
  assert next_attempt_at(2, now=NOW, settings=settings) == expected
