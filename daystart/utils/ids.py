"""Identifier utilities."""

from __future__ import annotations

import os
import socket
import uuid


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_worker_id() -> str:
  """Return a lease owner id unique to this process invocation."""
  return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def generate_request_id() -> str:
  """Return a request correlation id."""
  return uuid.uuid4().hex
