"""
API Version 1 Router
Aggregates all v1 endpoints
"""
from fastapi import APIRouter

from finadvisor.api.v1.admin import router as admin_router
from finadvisor.api.v1.chat_stream import router as chat_stream_router
from finadvisor.api.v1.health import router as health_router
from finadvisor.api.v1.insights import router as insights_router

router = APIRouter(tags=["v1"])

# Include sub-routers
router.include_router(chat_stream_router)  # POST /chat/stream
router.include_router(insights_router)  # POST /insights
router.include_router(admin_router)  # /admin/cache/*
router.include_router(health_router)


@router.get("/")
async def api_v1_root():
    """API v1 root endpoint"""
    return {"api": "v1", "status": "active"}
