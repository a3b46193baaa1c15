from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from daystart.config import get_settings
from daystart.content.refresh import CooldownActiveError
from daystart.jobs.models import TickResult
from daystart.main import app
from tests.fakes import TASK_SECRET

CLIENT = {"x-client-id": "device-123"}
TASK_HEADERS = {"x-daystart-task-secret": TASK_SECRET}


@pytest.fixture
async def async_client(settings):
  app.dependency_overrides[get_settings] = lambda: settings
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_health(async_client):
  response = await async_client.get("/health")

  assert response.status_code == 200
  assert response.json()["status"] == "ok"
  assert response.headers["x-request-id"]


@pytest.mark.anyio
async def test_create_then_fetch_job(async_client):
  body = {"local_date": "2026-10-19", "scheduled_at": "2026-10-19T12:30:00Z", "timezone": "America/New_York", "stock_symbols": ["aapl", "AAPL", "msft"]}

  created = await async_client.post("/v1/jobs", json=body, headers=CLIENT)
  repeated = await async_client.post("/v1/jobs", json=body, headers=CLIENT)

  assert created.status_code == 200
  assert created.json()["created"] is True
  assert repeated.json()["created"] is False
  job_id = created.json()["job_id"]
  assert repeated.json()["job_id"] == job_id

  status = await async_client.get(f"/v1/jobs/{job_id}", headers=CLIENT)
  assert status.status_code == 200
  assert status.json()["status"] == "queued"
  assert status.json()["audio_url"] is None

  other = await async_client.get(f"/v1/jobs/{job_id}", headers={"x-client-id": "someone-else"})
  assert other.status_code == 404
  assert other.json()["detail"] == "Job not found"


@pytest.mark.anyio
async def test_client_id_is_required(async_client):
  response = await async_client.post("/v1/jobs", json={"local_date": "TODAY", "scheduled_at": "NOW", "timezone": "UTC"})

  assert response.status_code == 401


@pytest.mark.anyio
@pytest.mark.parametrize(
  "overrides",
  [{"timezone": "Mars/Olympus"}, {"duration_seconds": 30}, {"stock_symbols": ["NOT A SYMBOL"]}, {"local_date": "19/10/2026"}, {"local_date": "2026-02-30"}, {"local_date": "2026-13-01"}, {"unexpected": True}],
)
async def test_invalid_requests_are_rejected(async_client, overrides):
  body = {"local_date": "2026-10-19", "scheduled_at": "NOW", "timezone": "UTC", **overrides}

  response = await async_client.post("/v1/jobs", json=body, headers=CLIENT)

  assert response.status_code == 422
  assert "requestId" in response.json()


@pytest.mark.anyio
async def test_cancel_route(async_client):
  created = await async_client.post("/v1/jobs", json={"local_date": "2026-10-19", "scheduled_at": "2026-10-19T12:30:00Z", "timezone": "UTC"}, headers=CLIENT)
  job_id = created.json()["job_id"]

  cancelled = await async_client.post(f"/v1/jobs/{job_id}/cancel", headers=CLIENT)

  assert cancelled.status_code == 200
  assert cancelled.json()["status"] == "cancelled"


@pytest.mark.anyio
async def test_tick_requires_task_secret(async_client):
  response = await async_client.post("/worker/tick", headers={"x-daystart-task-secret": "wrong"})

  assert response.status_code == 403


@pytest.mark.anyio
async def test_tick_runs_processor(async_client):
  processor = SimpleNamespace(run_tick=AsyncMock(return_value=TickResult(worker_id="w-1", completed=["job-a"])))
  with patch("daystart.api.routes.worker.build_job_processor", return_value=processor):
    response = await async_client.post("/worker/tick", headers={"authorization": f"Bearer {TASK_SECRET}"})

  assert response.status_code == 200
  assert response.json()["worker_id"] == "w-1"
  assert response.json()["completed"] == ["job-a"]


@pytest.mark.anyio
async def test_refresh_cooldown_returns_429(async_client):
  refresher = SimpleNamespace(run_cycle=AsyncMock(side_effect=CooldownActiveError("content_refresh", 120)))
  with patch("daystart.api.routes.tasks.build_content_refresher", return_value=refresher):
    response = await async_client.post("/internal/tasks/refresh-content", headers=TASK_HEADERS)

  assert response.status_code == 429
  assert response.headers["retry-after"] == "120"
  assert response.json()["retryAfterSeconds"] == 120


@pytest.mark.anyio
async def test_cleanup_route_reports_passes(async_client):
  response = await async_client.post("/internal/tasks/cleanup", json={"mode": "both"}, headers=TASK_HEADERS)
  skipped = await async_client.post("/internal/tasks/cleanup", headers=TASK_HEADERS)

  assert response.status_code == 200
  assert [item["mode"] for item in response.json()["passes"]] == ["fast", "deep"]
  assert skipped.json()["passes"][0]["status"] == "skipped"
