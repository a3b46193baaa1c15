import logging

from fastapi import APIRouter, Depends, Path, Query

from daystart.api.models import CreateJobRequest, CreateJobResponse, JobStatusResponse, SegmentResponse
from daystart.config import Settings, get_settings
from daystart.core.security import get_client_id
from daystart.services import jobs as job_service
from daystart.services.storage_client import build_storage_client
from daystart.storage.factory import get_jobs_repo

router = APIRouter()
logger = logging.getLogger("daystart.api.routes.jobs")


@router.post("", response_model=CreateJobResponse)
async def create_job(  # noqa: B008
  request: CreateJobRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_client_id),  # noqa: B008
) -> CreateJobResponse:
  """Create the briefing job for a local date, or update the existing one."""
  return await job_service.create_job(request, user_id=user_id, settings=settings, repo=get_jobs_repo(settings), store=build_storage_client(settings))


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  mark_completed: bool = Query(default=False),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_client_id),  # noqa: B008
) -> JobStatusResponse:
  """Fetch job status; ready jobs include a fresh signed audio URL."""
  return await job_service.get_job_status(job_id, user_id=user_id, settings=settings, repo=get_jobs_repo(settings), store=build_storage_client(settings), mark_completed=mark_completed)


@router.get("/{job_id}/segments/{index}", response_model=SegmentResponse)
async def get_segment(  # noqa: B008
  job_id: str,
  index: int = Path(ge=0),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_client_id),  # noqa: B008
) -> SegmentResponse:
  return await job_service.get_segment(job_id, index, user_id=user_id, settings=settings, repo=get_jobs_repo(settings), store=build_storage_client(settings))


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
async def cancel_job(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  user_id: str = Depends(get_client_id),  # noqa: B008
) -> JobStatusResponse:
  """Cancel a job that has not started its current stage."""
  return await job_service.cancel_job(job_id, user_id=user_id, settings=settings, repo=get_jobs_repo(settings), store=build_storage_client(settings))
