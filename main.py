import logging
import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

import redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from db import SessionLocal, make_engine
from matching.logic.cache import MatchCache, create_redis_client
from matching.logic.feature_flags import FeatureFlagResolver
from matching.logic.metrics import MetricsCollector
from matching.logic.program_cache import ProgramCatalogCache
from matching.logic.runner import MatchingService
from matching.logic.settings import MatchingSettings, load_settings
from matching.routes import router as matching_router

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def build_service(
    settings: MatchingSettings,
    redis_client: redis.Redis,
    session_factory: Callable[[], Session]
) -> MatchingService:
    return MatchingService(
        flags=FeatureFlagResolver(settings.flags),
        match_cache=MatchCache(redis_client, ttl=settings.match_cache_ttl),
        program_cache=ProgramCatalogCache(redis_client, session_factory, ttl=settings.programs_cache_ttl),
        metrics=MetricsCollector(),
        prefilter=settings.prefilter_candidates,
    )


def create_app(
    settings: Optional[MatchingSettings] = None,
    redis_client: Optional[redis.Redis] = None,
    session_factory: Optional[Callable[[], Session]] = None
) -> FastAPI:
    """
    Build the API. Anything not injected is created from the environment
    when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal settings, redis_client, session_factory

        # Startup
        if settings is None:
            settings = load_settings()
        logging.getLogger().setLevel(settings.log_level)

        if session_factory is None:
            SessionLocal.configure(bind=make_engine(settings.database_url))
            session_factory = SessionLocal
        if redis_client is None:
            redis_client = create_redis_client(settings.redis_url or DEFAULT_REDIS_URL)

        service = build_service(settings, redis_client, session_factory)
        app.state.matching_service = service
        logger.info("🚀 Matching API starting up...")

        service.program_cache.warm_programs_cache()

        yield

        # Shutdown
        logger.info("Matching API shutting down...")

    app = FastAPI(title="IB Program Matching API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(matching_router)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "matching"}

    return app


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

app = create_app()
