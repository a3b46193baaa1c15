from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Body, Depends, status

from daystart.api.models import CleanupPass, CleanupRequest, CleanupResponse, FetchSummary, RefreshResponse
from daystart.config import Settings, get_settings
from daystart.core.security import require_task_secret
from daystart.services.pipeline import build_cleanup_service, build_content_refresher
from daystart.utils.time import format_instant

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/refresh-content", status_code=status.HTTP_200_OK, response_model=RefreshResponse)
async def refresh_content(settings: Annotated[Settings, Depends(get_settings)]) -> RefreshResponse:
  """
  Refresh every content type from its sources.
  Answers 429 with Retry-After while the cooldown from the last successful run is active.
  """
  refresher = build_content_refresher(settings)
  summary = await refresher.run_cycle()
  return RefreshResponse(
    started_at=format_instant(summary.started_at) or "",
    finished_at=format_instant(summary.finished_at) or "",
    succeeded=summary.succeeded,
    failed=summary.failed,
    purged=summary.purged,
    freshness=summary.freshness,
    fetches=[
      FetchSummary(source=record.source, content_type=record.content_type, selector=record.selector, outcome=record.outcome, item_count=record.item_count, error=record.error, cached_age_hours=record.cached_age_hours)
      for record in summary.fetches
    ],
  )


@router.post("/cleanup", status_code=status.HTTP_200_OK, response_model=CleanupResponse)
async def cleanup_artifacts(settings: Annotated[Settings, Depends(get_settings)], payload: Annotated[CleanupRequest | None, Body()] = None) -> CleanupResponse:
  """Delete expired audio (fast) and orphaned objects (deep); rate-limited passes report skipped."""
  payload = payload or CleanupRequest()
  service = build_cleanup_service(settings)
  results = await service.run(payload.mode, retention_days=payload.retention_days)
  return CleanupResponse(passes=[CleanupPass(**asdict(result)) for result in results])
