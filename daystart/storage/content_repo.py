"""Storage interface for cached content."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from daystart.content.models import ContentEntry, FetchLogRecord


class ContentRepository(Protocol):
  """Repository contract for the content cache and its fetch log."""

  async def save_entry(self, entry: ContentEntry) -> ContentEntry:
    """Append a freshly fetched entry."""

  async def latest_entries(self, content_type: str, selector: str) -> list[ContentEntry]:
    """Return the newest entry per source for a key."""

  async def purge_fetched_before(self, cutoff: datetime) -> int:
    """Delete entries fetched before the cutoff and return the count."""

  async def record_fetch(self, record: FetchLogRecord) -> None:
    """Append a fetch log row."""
