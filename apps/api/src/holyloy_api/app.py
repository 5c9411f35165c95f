from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from holyloy_api.core.settings import settings
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.rewards import get_threshold_dispatcher, register_default_bonus_hooks
from .services.rewards.bonuses import BONUS_THRESHOLD


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    dispatcher = get_threshold_dispatcher()
    bonus_hooks = []
    if settings.reward_bonus_hooks_enabled:
        bonus_hooks = register_default_bonus_hooks(dispatcher)
        logger.info(
            "Reward bonus hooks enabled",
            thresholds=dispatcher.thresholds(),
            handlers=len(bonus_hooks),
        )
    else:
        logger.info(
            "Reward bonus hooks disabled",
            reason="reward_bonus_hooks_enabled is false",
        )
    app.state.reward_bonus_hooks = bonus_hooks

    try:
        yield
    finally:
        for handler in bonus_hooks:
            dispatcher.unregister(BONUS_THRESHOLD, handler)


def create_app() -> FastAPI:
    """Application factory for the Holyloy rewards API."""
    configure_logging(
        service_name="holyloy-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Holyloy Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="holyloy-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
