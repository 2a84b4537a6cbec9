"""
每日文章提案
为开启邮件通知的用户生成新的大纲提案并发送邮件

- 批量模式：逐个用户处理，单个用户失败只记录日志，不影响其他用户
- 手动模式：指定用户与站点，失败直接抛出给调用方
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.ai_generator import ProviderFactory, create_provider
from app.core.ai_providers.base import OutlineDraft
from app.core.email_service import EmailService, ProposalItem
from app.core.token_manager import TokenManager
from app.database.connection import async_session_factory
from app.models.article import ArticleOutline
from app.models.site import Site
from app.models.user import User, UserSettings

logger = logging.getLogger(__name__)

# 作为去重上下文的已有大纲数量
EXISTING_OUTLINE_CONTEXT = 50


class QuotaExceededError(ValueError):
    """月度 token 配额已用尽"""


class DailyProposalService:
    """每日提案批处理（自身不保存状态）"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        email_service: Optional[EmailService] = None,
        provider_factory: Optional[ProviderFactory] = None,
        proposal_count: Optional[int] = None,
    ):
        self._session_factory = session_factory or async_session_factory
        self._email_service = email_service or EmailService()
        self._provider_factory = provider_factory or create_provider
        self.proposal_count = proposal_count or settings.DAILY_PROPOSAL_COUNT

    async def _load_targets(self) -> list[tuple[int, int]]:
        """
        找出需要发送提案的 (user_id, site_id)
        每个用户只取最近更新、且已生成内容方针的一个站点
        """
        async with self._session_factory() as db:
            result = await db.execute(
                select(User.id)
                .join(UserSettings, UserSettings.user_id == User.id)
                .where(UserSettings.email_notifications.is_(True))
                .order_by(User.id)
            )
            user_ids = list(result.scalars().all())

            targets = []
            for user_id in user_ids:
                site_result = await db.execute(
                    select(Site.id)
                    .where(Site.user_id == user_id, Site.content_policy.is_not(None))
                    .order_by(Site.updated_at.desc(), Site.id.desc())
                    .limit(1)
                )
                site_id = site_result.scalar_one_or_none()
                if site_id is not None:
                    targets.append((user_id, site_id))
        return targets

    async def generate_and_send_daily_proposals(self) -> dict[str, int]:
        """
        批量生成并发送每日提案

        Returns:
            {"sent": 成功发送数, "skipped": 因配额跳过数, "failed": 失败数}
        """
        summary = {"sent": 0, "skipped": 0, "failed": 0}
        targets = await self._load_targets()
        logger.info(f"每日提案开始: 共 {len(targets)} 个用户")

        for user_id, site_id in targets:
            try:
                async with self._session_factory() as db:
                    proposals = await self._process(db, user_id, site_id, strict=False)
                    await db.commit()
            except Exception as e:
                summary["failed"] += 1
                logger.error(f"用户 {user_id} 的每日提案生成失败: {type(e).__name__}: {e}")
                continue

            if proposals is None:
                summary["skipped"] += 1
            else:
                summary["sent"] += 1

        logger.info(
            f"每日提案完成: 发送 {summary['sent']}，跳过 {summary['skipped']}，"
            f"失败 {summary['failed']}"
        )
        return summary

    async def generate_proposals_for_user(
        self, user_id: int, site_id: int
    ) -> list[OutlineDraft]:
        """
        为指定用户的指定站点生成并发送提案

        Raises:
            ValueError: 用户 / 站点不存在、站点没有内容方针或配额已用尽
            Exception: AI 或邮件调用失败
        """
        async with self._session_factory() as db:
            proposals = await self._process(db, user_id, site_id, strict=True)
            await db.commit()
        return proposals

    async def _process(
        self, db: AsyncSession, user_id: int, site_id: int, *, strict: bool
    ) -> Optional[list[OutlineDraft]]:
        """单个用户的处理流程；非 strict 模式下配额不足返回 None"""
        user = await db.get(User, user_id)
        if user is None:
            raise ValueError("用户不存在")

        result = await db.execute(
            select(Site).where(Site.id == site_id, Site.user_id == user_id)
        )
        site = result.scalar_one_or_none()
        if site is None or not site.content_policy:
            raise ValueError("站点不存在或尚未生成内容方针")

        token_manager = TokenManager(db)
        if not await token_manager.check_limit(user_id):
            if strict:
                raise QuotaExceededError("本月 token 用量已达上限")
            logger.info(f"用户 {user.email} 已达到月度 token 上限，跳过每日提案")
            return None

        result = await db.execute(
            select(ArticleOutline.title)
            .where(ArticleOutline.site_id == site.id)
            .order_by(ArticleOutline.created_at.desc())
            .limit(EXISTING_OUTLINE_CONTEXT)
        )
        existing_titles = list(result.scalars().all())

        ai_service = (user.settings.ai_service if user.settings else None) or settings.DEFAULT_AI_SERVICE
        provider = self._provider_factory(ai_service)
        proposals = await provider.generate_article_outlines(
            site.content_policy, self.proposal_count, existing_titles
        )
        if not proposals:
            raise ValueError("AI 未返回可用的大纲提案")

        await self._email_service.send_daily_proposals(
            user.email,
            user.name or user.email,
            site.name,
            [ProposalItem(p.title, p.outline, p.seo_keywords) for p in proposals],
            dashboard_url=settings.APP_BASE_URL,
        )

        tokens_used = provider.get_token_usage()
        if tokens_used > 0:
            await token_manager.record_usage(user_id, ai_service, tokens_used)

        logger.info(f"已向用户 {user.email} 发送 {len(proposals)} 条每日提案 (site={site.name})")
        return proposals
