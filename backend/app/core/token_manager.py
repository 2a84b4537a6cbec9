"""
Token 用量台账
记录每次生成调用消耗的 token，按月汇总并执行月度配额检查
"""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.usage import TokenUsage
from app.models.user import UserSettings

logger = logging.getLogger(__name__)


def month_range(now: datetime) -> tuple[datetime, datetime]:
    """
    当前自然月的时间区间 [月初 00:00, 下月初 00:00)
    月末最后一天整天都包含在内
    """
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def _to_date(value) -> date:
    """func.date() 在 SQLite 中返回字符串，在其他数据库中返回 date"""
    if isinstance(value, date):
        return value if not isinstance(value, datetime) else value.date()
    return date.fromisoformat(str(value))


class TokenManager:
    """Token 用量台账（每个请求一个实例，绑定当前数据库会话）"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_usage(self, user_id: int, ai_service: str, tokens_used: int) -> TokenUsage:
        """追加一条用量记录"""
        usage = TokenUsage(
            user_id=user_id,
            ai_service=ai_service,
            tokens_used=max(int(tokens_used or 0), 0),
            usage_date=utcnow(),
        )
        self.db.add(usage)
        await self.db.flush()
        logger.info(
            f"记录 token 用量: user_id={user_id}, service={ai_service}, "
            f"tokens={usage.tokens_used}"
        )
        return usage

    async def get_total_usage(self, user_id: int) -> int:
        """累计用量（全部时间）"""
        result = await self.db.execute(
            select(func.coalesce(func.sum(TokenUsage.tokens_used), 0)).where(
                TokenUsage.user_id == user_id
            )
        )
        return int(result.scalar() or 0)

    async def get_monthly_usage(self, user_id: int) -> int:
        """当月用量"""
        start, end = month_range(utcnow())
        result = await self.db.execute(
            select(func.coalesce(func.sum(TokenUsage.tokens_used), 0)).where(
                TokenUsage.user_id == user_id,
                TokenUsage.usage_date >= start,
                TokenUsage.usage_date < end,
            )
        )
        return int(result.scalar() or 0)

    async def check_limit(self, user_id: int) -> bool:
        """
        月度配额检查
        没有用户设置记录时直接拒绝；用量恰好等于上限也视为已用尽
        """
        result = await self.db.execute(
            select(UserSettings).where(UserSettings.user_id == user_id)
        )
        user_settings = result.scalar_one_or_none()
        if user_settings is None:
            return False

        monthly_usage = await self.get_monthly_usage(user_id)
        return monthly_usage < user_settings.token_limit_monthly

    async def get_usage_by_service(self, user_id: int) -> dict[str, int]:
        """当月按 AI 服务分组的用量"""
        start, end = month_range(utcnow())
        result = await self.db.execute(
            select(TokenUsage.ai_service, func.sum(TokenUsage.tokens_used))
            .where(
                TokenUsage.user_id == user_id,
                TokenUsage.usage_date >= start,
                TokenUsage.usage_date < end,
            )
            .group_by(TokenUsage.ai_service)
        )
        return {service: int(total or 0) for service, total in result.all()}

    async def get_daily_usage(self, user_id: int, days: int = 30) -> list[tuple[date, int]]:
        """
        最近 days 天（含今天）的每日用量，按日期升序
        没有用量的日期以 0 补齐，返回条目数恒为 days
        """
        if days < 1:
            return []

        today = utcnow().date()
        first_day = today - timedelta(days=days - 1)
        start = datetime.combine(first_day, datetime.min.time())

        day_col = func.date(TokenUsage.usage_date)
        result = await self.db.execute(
            select(day_col, func.sum(TokenUsage.tokens_used))
            .where(
                TokenUsage.user_id == user_id,
                TokenUsage.usage_date >= start,
            )
            .group_by(day_col)
        )
        totals = {_to_date(day): int(total or 0) for day, total in result.all()}

        return [
            (first_day + timedelta(days=i), totals.get(first_day + timedelta(days=i), 0))
            for i in range(days)
        ]

    async def get_usage_summary(self, user_id: int) -> dict:
        """仪表盘用的用量概览"""
        total = await self.get_total_usage(user_id)
        monthly = await self.get_monthly_usage(user_id)

        result = await self.db.execute(
            select(UserSettings.token_limit_monthly).where(UserSettings.user_id == user_id)
        )
        limit = result.scalar_one_or_none() or 0
        percentage = round(monthly / limit * 100) if limit else 100

        return {
            "total_tokens": total,
            "monthly_tokens": monthly,
            "token_limit": limit,
            "usage_percentage": percentage,
        }
