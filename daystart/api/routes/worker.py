from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from daystart.api.models import TickResponse
from daystart.config import Settings, get_settings
from daystart.core.security import require_task_secret
from daystart.services.pipeline import build_job_processor

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/tick", status_code=status.HTTP_200_OK, response_model=TickResponse, dependencies=[Depends(require_task_secret)])
async def run_tick(settings: Annotated[Settings, Depends(get_settings)]) -> TickResponse:
  """Run one scheduler tick; an external cron calls this when no runner process is deployed."""
  processor = build_job_processor(settings)
  result = await processor.run_tick()
  return TickResponse(worker_id=result.worker_id, missed=result.missed, leased=result.leased, completed=result.completed, retried=result.retried, failed=result.failed)
