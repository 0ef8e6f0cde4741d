from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI

from ramadan_clock.api.routes import router as api_router
from ramadan_clock.config import Settings, load_settings
from ramadan_clock.fetching.cache import ResultCache
from ramadan_clock.fetching.rate_limiter import RateLimiterRegistry, TokenBucketConfig
from ramadan_clock.observability.metrics import Metrics
from ramadan_clock.progress.store import ProgressStore
from ramadan_clock.scheduler.worker import FetchWorker
from ramadan_clock.storage.repository import ScheduleRepository


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    app_settings = settings or load_settings()
    configure_logging(app_settings.log_level)

    repository = ScheduleRepository(app_settings.database_path)
    repository.init_db()

    limiters = RateLimiterRegistry()
    limiters.get(TokenBucketConfig.from_profile(app_settings.rate_limit))
    cache = ResultCache()
    progress = ProgressStore()
    metrics = Metrics()

    worker = FetchWorker(
        settings=app_settings,
        limiters=limiters,
        cache=cache,
        repository=repository,
        progress=progress,
        metrics=metrics,
        transport=transport,
    )

    app = FastAPI(title="ramadan-clock", version="0.1.0")
    app.state.settings = app_settings
    app.state.repository = repository
    app.state.limiters = limiters
    app.state.cache = cache
    app.state.progress = progress
    app.state.metrics = metrics
    app.state.worker = worker

    @app.on_event("startup")
    async def _on_startup() -> None:
        if app_settings.enable_scheduler:
            await worker.start()

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        await worker.stop()

    app.include_router(api_router)
    return app


app = create_app()
