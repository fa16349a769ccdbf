from fastapi import APIRouter

from visibility_stats.api.v1.stats import router as stats_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(stats_router)
