from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from holyloy_api.db.session import get_session
from holyloy_api.services.rewards import get_threshold_dispatcher


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logger.warning("Database readiness probe failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail=str(error))
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    thresholds = get_threshold_dispatcher().thresholds()
    if thresholds:
        components["threshold_hooks"] = ComponentStatus(
            status="ready",
            detail="Thresholds: " + ", ".join(str(value) for value in thresholds),
        )
    else:
        components["threshold_hooks"] = ComponentStatus(
            status="disabled",
            detail="No threshold hooks registered",
        )

    return ReadinessPayload(status=status, components=components)
