from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from daystart.core.database import Base


class ContentCacheEntry(Base):
  __tablename__ = "content_cache"
  __table_args__ = (Index("ix_content_cache_key_fetched", "content_type", "selector", "source", "fetched_at"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  content_type: Mapped[str] = mapped_column(String, nullable=False)
  selector: Mapped[str] = mapped_column(String, nullable=False)
  source: Mapped[str] = mapped_column(String, nullable=False)
  payload: Mapped[list] = mapped_column(JSONB, nullable=False)
  fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class ContentFetchLog(Base):
  __tablename__ = "content_fetch_log"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  source: Mapped[str] = mapped_column(String, nullable=False, index=True)
  content_type: Mapped[str] = mapped_column(String, nullable=False)
  selector: Mapped[str] = mapped_column(String, nullable=False)
  outcome: Mapped[str] = mapped_column(String, nullable=False)
  item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  cached_age_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
