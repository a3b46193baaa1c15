import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("daystart.entrypoint")


def main() -> None:
  """Start the API server, or the tick runner when DAYSTART_PROCESS=worker."""
  if os.getenv("DAYSTART_PROCESS", "api").strip().lower() == "worker":
    logger.info("Starting job runner...")
    os.execvp("python", ["python", "-m", "daystart.jobs.runner"])

  # Migrations run in the deploy pipeline (alembic upgrade head), never at boot.
  port = os.getenv("PORT", "8080")
  logger.info("Starting API on port %s...", port)
  # execvp hands signals (SIGTERM) straight to uvicorn.
  os.execvp("uvicorn", ["uvicorn", "daystart.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"])


if __name__ == "__main__":
  main()
