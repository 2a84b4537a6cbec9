"""
统计与用量相关的 Pydantic 响应模型
"""

from datetime import date

from pydantic import BaseModel


class DashboardStats(BaseModel):
    """仪表盘统计数据"""
    sites_count: int = 0
    outlines_count: int = 0
    articles_count: int = 0

    # token 用量
    total_tokens: int = 0
    monthly_tokens: int = 0
    token_limit: int = 0


class DailyUsageItem(BaseModel):
    date: date
    tokens: int


class DailyUsageResponse(BaseModel):
    days: int
    usage: list[DailyUsageItem]


class ServiceUsageItem(BaseModel):
    ai_service: str
    tokens: int


class ServiceUsageResponse(BaseModel):
    """当月按 AI 服务分组的用量"""
    usage: list[ServiceUsageItem]
    total: int


class UsageSummaryResponse(BaseModel):
    total_tokens: int
    monthly_tokens: int
    token_limit: int
    usage_percentage: int
