"""
定时任务触发相关的 Pydantic 模型
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ManualProposalRequest(BaseModel):
    """手动触发：不传则对所有用户执行批处理，传则只处理指定用户的指定站点"""
    user_id: Optional[int] = Field(default=None, description="用户 ID")
    site_id: Optional[int] = Field(default=None, description="站点 ID")


class ProposalSummary(BaseModel):
    sent: int = 0
    skipped: int = 0
    failed: int = 0


class CronRunResponse(BaseModel):
    message: str
    summary: Optional[ProposalSummary] = None
    proposals_count: Optional[int] = None
    timestamp: datetime
