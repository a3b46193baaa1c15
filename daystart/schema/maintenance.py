from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from daystart.core.database import Base


class MaintenanceMarker(Base):
  __tablename__ = "maintenance_markers"

  task: Mapped[str] = mapped_column(String, primary_key=True)
  last_success_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  claimed_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class MaintenanceRun(Base):
  __tablename__ = "maintenance_runs"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  task: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
