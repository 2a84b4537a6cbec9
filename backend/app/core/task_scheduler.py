"""
任务调度器
使用 APScheduler 每天定时执行每日文章提案批处理
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.core.daily_proposal import DailyProposalService

logger = logging.getLogger(__name__)

DAILY_PROPOSAL_JOB_ID = "daily_proposals"


class TaskScheduler:
    """
    定时任务调度器
    - 每日提案：按 DAILY_PROPOSAL_HOUR / MINUTE 在 SCHEDULER_TIMEZONE 时区执行
    """

    def __init__(self, service_factory=DailyProposalService):
        self.scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)
        self._service_factory = service_factory
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """启动调度器"""
        if self._running:
            return

        self.scheduler.add_job(
            self._run_daily_proposals,
            CronTrigger(
                hour=settings.DAILY_PROPOSAL_HOUR,
                minute=settings.DAILY_PROPOSAL_MINUTE,
                timezone=settings.SCHEDULER_TIMEZONE,
            ),
            id=DAILY_PROPOSAL_JOB_ID,
            name="每日文章提案",
            replace_existing=True,
            # 进程休眠错过执行时间时，1 小时内仍补跑
            misfire_grace_time=3600,
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"任务调度器已启动，每日提案时间 "
            f"{settings.DAILY_PROPOSAL_HOUR:02d}:{settings.DAILY_PROPOSAL_MINUTE:02d} "
            f"({settings.SCHEDULER_TIMEZONE})"
        )

    def shutdown(self):
        """关闭调度器"""
        if self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("任务调度器已关闭")

    def next_run_time(self) -> Optional[str]:
        job = self.scheduler.get_job(DAILY_PROPOSAL_JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    async def _run_daily_proposals(self):
        """定时任务入口，异常只记录不抛出，避免影响调度器"""
        try:
            summary = await self._service_factory().generate_and_send_daily_proposals()
            logger.info(f"定时每日提案执行完成: {summary}")
        except Exception as e:
            logger.error(f"定时每日提案执行异常: {e}", exc_info=True)


# 全局调度器单例
task_scheduler = TaskScheduler()
