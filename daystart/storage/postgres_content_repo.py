"""Postgres-backed content cache repository."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select

from daystart.content.models import ContentEntry, FetchLogRecord
from daystart.core.database import get_session_factory
from daystart.schema.content import ContentCacheEntry, ContentFetchLog
from daystart.storage.content_repo import ContentRepository


class PostgresContentRepository(ContentRepository):
  """Append-only cache rows; reads take the newest row per source."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def save_entry(self, entry: ContentEntry) -> ContentEntry:
    async with self._session_factory() as session:
      row = ContentCacheEntry(content_type=entry.content_type, selector=entry.selector, source=entry.source, payload=entry.payload, fetched_at=entry.fetched_at, expires_at=entry.expires_at)
      session.add(row)
      await session.commit()
      return self._model_to_entry(row)

  async def latest_entries(self, content_type: str, selector: str) -> list[ContentEntry]:
    async with self._session_factory() as session:
      # DISTINCT ON keeps the first row per source under this ordering.
      stmt = (
        select(ContentCacheEntry)
        .where(ContentCacheEntry.content_type == content_type, ContentCacheEntry.selector == selector)
        .distinct(ContentCacheEntry.source)
        .order_by(ContentCacheEntry.source.asc(), ContentCacheEntry.fetched_at.desc())
      )
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_entry(row) for row in rows]

  async def purge_fetched_before(self, cutoff: datetime) -> int:
    async with self._session_factory() as session:
      result = await session.execute(delete(ContentCacheEntry).where(ContentCacheEntry.fetched_at < cutoff))
      await session.commit()
      return int(result.rowcount or 0)

  async def record_fetch(self, record: FetchLogRecord) -> None:
    async with self._session_factory() as session:
      session.add(
        ContentFetchLog(
          source=record.source,
          content_type=record.content_type,
          selector=record.selector,
          outcome=record.outcome,
          item_count=record.item_count,
          error=record.error,
          cached_age_hours=record.cached_age_hours,
          created_at=record.created_at,
        )
      )
      await session.commit()

  def _model_to_entry(self, row: ContentCacheEntry) -> ContentEntry:
    return ContentEntry(content_type=row.content_type, selector=row.selector, source=row.source, payload=list(row.payload or []), fetched_at=row.fetched_at, expires_at=row.expires_at, entry_id=row.id)
