"""
Gymvy local sync service.
Local-first storage, identity mapping and sync for workouts, sessions and rest days.
"""
import logging

from fastapi import FastAPI
from .core.config import settings
from .core.request_logging import RequestLoggingMiddleware
from .models.base import Base, engine
from .models import record, identity, calendar, body_weight as body_weight_model  # noqa: F401 - register tables
from .api import saved_workouts, sessions, rest_days, body_weight, sync

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Schema migrations live outside this service
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Gymvy Local Sync API",
    description=(
        "Local-first record store for saved workouts, workout sessions and rest days, "
        "with on-demand sync to the remote backend."
    ),
    version=settings.VERSION,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(saved_workouts.router, prefix="/api/v1")
app.include_router(sessions.router, prefix="/api/v1")
app.include_router(rest_days.router, prefix="/api/v1")
app.include_router(body_weight.router, prefix="/api/v1")
app.include_router(sync.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
