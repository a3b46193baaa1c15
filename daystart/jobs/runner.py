"""Persistent worker loop: `python -m daystart.jobs.runner`."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from daystart.config import get_settings
from daystart.core.database import dispose_engine
from daystart.core.logging import setup_logging
from daystart.jobs.worker import JobProcessor
from daystart.services.pipeline import build_job_processor

logger = logging.getLogger("daystart.jobs.runner")


async def run_forever(processor: JobProcessor, *, interval_seconds: float, stop: asyncio.Event, max_ticks: int | None = None) -> int:
  """Tick until stopped; an idle tick waits the interval, a busy one loops immediately."""
  ticks = 0
  while not stop.is_set():
    try:
      result = await processor.run_tick()
      busy = bool(result.leased)
    except Exception:  # noqa: BLE001
      logger.exception("Worker tick failed")
      busy = False
    ticks += 1
    if max_ticks is not None and ticks >= max_ticks:
      break
    if busy:
      continue
    try:
      await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
    except asyncio.TimeoutError:
      pass
  return ticks


async def _main(interval_seconds: float) -> None:
  settings = get_settings()
  setup_logging(settings)
  processor = build_job_processor(settings)
  stop = asyncio.Event()
  loop = asyncio.get_running_loop()
  for sig in (signal.SIGINT, signal.SIGTERM):
    loop.add_signal_handler(sig, stop.set)
  logger.info("Worker %s started (interval %ss, batch %s)", processor.worker_id, interval_seconds, settings.worker_batch_size)
  try:
    await run_forever(processor, interval_seconds=interval_seconds, stop=stop)
  finally:
    await dispose_engine()
    logger.info("Worker %s stopped", processor.worker_id)


def main() -> None:
  parser = argparse.ArgumentParser(description="Run the DayStart job worker loop.")
  parser.add_argument("--interval", type=float, default=60.0, help="Seconds to wait after an idle tick.")
  args = parser.parse_args()
  asyncio.run(_main(args.interval))


if __name__ == "__main__":
  main()
