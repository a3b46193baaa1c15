from __future__ import annotations

import logging
import re
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from daystart.config import Settings, get_settings

logger = logging.getLogger(__name__)

_CLIENT_ID = re.compile(r"^[A-Za-z0-9_\-:.]{1,128}$")


def require_task_secret(
  settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_daystart_task_secret: str | None = Header(default=None)
) -> None:
  """Guard scheduler and maintenance triggers with the shared task secret."""
  # Secure-by-default: internal endpoints refuse to run when no secret is configured.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest((x_daystart_task_secret or ""), settings.task_secret)
  bearer_valid = secrets.compare_digest((authorization or ""), f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to an internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


def get_client_id(x_client_id: str | None = Header(default=None)) -> str:
  """Resolve the calling user from the client id header."""
  if not x_client_id or not _CLIENT_ID.match(x_client_id):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid x-client-id header")
  return x_client_id
