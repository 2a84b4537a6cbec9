"""
Token 用量相关 API 路由
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.token_manager import TokenManager
from app.database.connection import get_db
from app.models.user import User
from app.schemas.stats import (
    DailyUsageItem,
    DailyUsageResponse,
    ServiceUsageItem,
    ServiceUsageResponse,
    UsageSummaryResponse,
)

router = APIRouter(prefix="/usage", tags=["用量统计"])


@router.get("/daily", response_model=DailyUsageResponse, summary="每日用量")
async def get_daily_usage(
    days: int = Query(30, ge=1, le=365, description="统计最近多少天（含今天）"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await TokenManager(db).get_daily_usage(current_user.id, days)
    return DailyUsageResponse(
        days=days,
        usage=[DailyUsageItem(date=day, tokens=tokens) for day, tokens in rows],
    )


@router.get("/by-service", response_model=ServiceUsageResponse, summary="按服务统计当月用量")
async def get_usage_by_service(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    by_service = await TokenManager(db).get_usage_by_service(current_user.id)
    items = [
        ServiceUsageItem(ai_service=service, tokens=tokens)
        for service, tokens in sorted(by_service.items(), key=lambda kv: kv[1], reverse=True)
    ]
    return ServiceUsageResponse(usage=items, total=sum(by_service.values()))


@router.get("/summary", response_model=UsageSummaryResponse, summary="用量概览")
async def get_usage_summary(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await TokenManager(db).get_usage_summary(current_user.id)
