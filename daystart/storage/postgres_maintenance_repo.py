"""Postgres-backed maintenance markers and run history."""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from daystart.core.database import get_session_factory
from daystart.schema.maintenance import MaintenanceMarker as MarkerRow
from daystart.schema.maintenance import MaintenanceRun
from daystart.storage.maintenance_repo import MaintenanceMarker, MaintenanceRepository, MaintenanceRunRecord


class PostgresMaintenanceRepository(MaintenanceRepository):
  """Claims are conditional updates, so concurrent triggers cannot both win."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def try_claim(self, task: str, *, now: datetime, min_interval_seconds: int, claim_seconds: int) -> bool:
    async with self._session_factory() as session:
      await session.execute(pg_insert(MarkerRow).values(task=task).on_conflict_do_nothing(index_elements=["task"]))
      stmt = (
        update(MarkerRow)
        .where(
          MarkerRow.task == task,
          or_(MarkerRow.last_success_at.is_(None), MarkerRow.last_success_at <= now - timedelta(seconds=min_interval_seconds)),
          or_(MarkerRow.claimed_until.is_(None), MarkerRow.claimed_until <= now),
        )
        .values(claimed_until=now + timedelta(seconds=claim_seconds))
        .returning(MarkerRow.task)
      )
      claimed = (await session.execute(stmt)).scalar_one_or_none() is not None
      await session.commit()
      return claimed

  async def release(self, task: str, *, now: datetime, success: bool) -> None:
    async with self._session_factory() as session:
      values: dict[str, datetime | None] = {"claimed_until": None}
      if success:
        values["last_success_at"] = now
      await session.execute(update(MarkerRow).where(MarkerRow.task == task).values(**values))
      await session.commit()

  async def get_marker(self, task: str) -> MaintenanceMarker | None:
    async with self._session_factory() as session:
      row = await session.get(MarkerRow, task)
      if row is None:
        return None
      return MaintenanceMarker(task=row.task, last_success_at=row.last_success_at, claimed_until=row.claimed_until)

  async def record_run(self, run: MaintenanceRunRecord) -> None:
    async with self._session_factory() as session:
      session.add(MaintenanceRun(task=run.task, status=run.status, details=run.details, started_at=run.started_at, finished_at=run.finished_at))
      await session.commit()
