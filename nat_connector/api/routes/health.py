from __future__ import annotations

from fastapi import APIRouter

from nat_connector.core import store
from nat_connector.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    settings = get_settings()
    stats = store.snapshot()
    return {
        "status": "healthy" if stats["bus_connected"] else "degraded",
        "version": settings.app_version,
        "mock_aws": settings.mock_aws,
        "subjects": settings.subjects_list,
        "requests": {
            "received": stats["received"],
            "in_flight": stats["in_flight"],
            "succeeded": stats["succeeded"],
            "failed": stats["failed"],
        },
        "bus_connected": stats["bus_connected"],
    }
