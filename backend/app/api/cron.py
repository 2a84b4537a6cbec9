"""
定时任务触发 API 路由
外部定时器（GET，CRON_SECRET）与管理员手动触发（POST，ADMIN_SECRET）
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import (
    bearer_matches,
    get_email_service,
    get_provider_factory,
)
from app.config import settings
from app.core.ai_generator import ProviderFactory
from app.core.daily_proposal import DailyProposalService, QuotaExceededError
from app.core.email_service import EmailService
from app.database.connection import get_session_factory
from app.models.base import utcnow
from app.schemas.cron import CronRunResponse, ManualProposalRequest, ProposalSummary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cron", tags=["定时任务"])

UNAUTHORIZED_DETAIL = "无效的触发密钥"


def get_daily_proposal_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    email_service: EmailService = Depends(get_email_service),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
) -> DailyProposalService:
    return DailyProposalService(
        session_factory=session_factory,
        email_service=email_service,
        provider_factory=provider_factory,
    )


@router.get("/daily-proposals", response_model=CronRunResponse, summary="定时触发每日提案")
async def run_daily_proposals(
    authorization: Optional[str] = Header(None),
    service: DailyProposalService = Depends(get_daily_proposal_service),
):
    """CRON_SECRET 未设置时不校验"""
    if settings.CRON_SECRET and not bearer_matches(authorization, settings.CRON_SECRET):
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)

    try:
        summary = await service.generate_and_send_daily_proposals()
    except Exception as e:
        logger.error(f"每日提案批处理异常: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="每日提案执行失败")

    return CronRunResponse(
        message="每日提案已执行",
        summary=ProposalSummary(**summary),
        timestamp=utcnow(),
    )


@router.post("/daily-proposals", response_model=CronRunResponse, summary="手动触发每日提案")
async def trigger_daily_proposals(
    data: Optional[ManualProposalRequest] = None,
    authorization: Optional[str] = Header(None),
    service: DailyProposalService = Depends(get_daily_proposal_service),
):
    """
    ADMIN_SECRET 未设置时拒绝所有请求
    同时指定 user_id 与 site_id 时只处理该站点，否则执行全量批处理
    """
    if not settings.ADMIN_SECRET or not bearer_matches(authorization, settings.ADMIN_SECRET):
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)

    data = data or ManualProposalRequest()
    if (data.user_id is None) != (data.site_id is None):
        raise HTTPException(status_code=400, detail="user_id 与 site_id 需要同时指定")

    if data.user_id is None:
        try:
            summary = await service.generate_and_send_daily_proposals()
        except Exception as e:
            logger.error(f"手动每日提案批处理异常: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="每日提案执行失败")
        return CronRunResponse(
            message="每日提案已执行",
            summary=ProposalSummary(**summary),
            timestamp=utcnow(),
        )

    try:
        proposals = await service.generate_proposals_for_user(data.user_id, data.site_id)
    except QuotaExceededError as e:
        raise HTTPException(status_code=429, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(
            f"手动每日提案失败: user_id={data.user_id}, site_id={data.site_id}, error={e}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="每日提案执行失败")

    logger.info(f"手动每日提案完成: user_id={data.user_id}, proposals={len(proposals)}")
    return CronRunResponse(
        message="每日提案已发送",
        proposals_count=len(proposals),
        timestamp=utcnow(),
    )
