from fastapi import APIRouter

from sarathi.api.assist import router as assist_router
from sarathi.api.health import router as health_router
from sarathi.api.messages import router as messages_router
from sarathi.api.sync import router as sync_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(sync_router, prefix="/api", tags=["sync"])
router.include_router(messages_router, prefix="/api", tags=["messages"])
router.include_router(assist_router, prefix="/api", tags=["assist"])
