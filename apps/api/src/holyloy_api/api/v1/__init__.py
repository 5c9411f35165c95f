from fastapi import APIRouter

from .endpoints import health, rewards

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(rewards.router)
