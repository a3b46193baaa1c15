from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from daystart.api.routes import jobs, tasks, worker
from daystart.config import get_settings
from daystart.content.refresh import CooldownActiveError
from daystart.core.exceptions import cooldown_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from daystart.core.json import DecimalJSONResponse
from daystart.core.lifespan import lifespan
from daystart.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

settings = get_settings()

app = FastAPI(title="DayStart", default_response_class=DecimalJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.allowed_origins,
  allow_credentials=True,
  allow_methods=["GET", "POST", "OPTIONS"],
  allow_headers=["content-type", "authorization", "x-client-id"],
  expose_headers=["content-length", "retry-after"],
)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(CooldownActiveError, cooldown_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(worker.router, prefix="/worker", tags=["worker"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
