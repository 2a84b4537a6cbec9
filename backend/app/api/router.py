"""
API 路由聚合
将所有子路由挂载到统一的 /api 前缀下
"""

from fastapi import APIRouter

from app.api.auth import router as auth_router
from app.api.settings import router as settings_router
from app.api.sites import router as sites_router
from app.api.outlines import router as outlines_router
from app.api.articles import router as articles_router
from app.api.usage import router as usage_router
from app.api.stats import router as stats_router
from app.api.cron import router as cron_router

# 主路由器，统一 /api 前缀
api_router = APIRouter(prefix="/api")

# 挂载各子路由（子路由自身已带 prefix，此处不再重复）
api_router.include_router(auth_router)
api_router.include_router(settings_router)
api_router.include_router(sites_router)
api_router.include_router(outlines_router)
api_router.include_router(articles_router)
api_router.include_router(usage_router)
api_router.include_router(stats_router)
api_router.include_router(cron_router)
