import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from daystart.core.database import dispose_engine
from daystart.core.logging import setup_logging
from daystart.services.storage_client import build_storage_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and storage after uvicorn starts; dispose the engine on shutdown."""
  from daystart.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("daystart.core.lifespan")

  try:
    setup_logging(settings)
    logger.info("Startup complete - logging verified (environment=%s, storage=%s).", settings.environment, settings.storage_backend)
  except RuntimeError:
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  # Ensure the audio bucket exists before the first job completes.
  try:
    storage_client = build_storage_client(settings)
    await storage_client.ensure_bucket()
    logger.info("Audio bucket ensured: %s", settings.audio_bucket)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Failed to ensure audio bucket at startup: %s", exc)

  yield

  await dispose_engine()
