"""
文章大纲相关 API 路由
单个大纲的查看 / 编辑 / 删除，以及 CSV 导出
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_owned_outline
from app.core import csv_exporter
from app.database.connection import get_db
from app.models.article import ArticleOutline, encode_keywords
from app.models.site import Site
from app.models.user import User
from app.schemas.outline import OutlineExportRequest, OutlineResponse, OutlineUpdateRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/outlines", tags=["文章大纲"])


def csv_download(content: str, filename: str) -> StreamingResponse:
    """CSV 下载响应，文件名做百分号编码"""
    return StreamingResponse(
        iter([content]),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{quote(filename)}"',
            "Cache-Control": "no-cache",
        },
    )


@router.post("/export", summary="导出大纲 CSV")
async def export_outlines(
    data: OutlineExportRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = (
        select(ArticleOutline)
        .join(Site, ArticleOutline.site_id == Site.id)
        .where(Site.user_id == current_user.id)
    )
    if data.outline_ids:
        stmt = stmt.where(ArticleOutline.id.in_(data.outline_ids))
    elif data.site_id is not None:
        stmt = stmt.where(ArticleOutline.site_id == data.site_id)
    stmt = stmt.order_by(ArticleOutline.created_at.desc(), ArticleOutline.id.desc())

    result = await db.execute(stmt)
    outlines = result.scalars().all()
    if not outlines:
        raise HTTPException(status_code=404, detail="没有可导出的文章大纲")

    content = csv_exporter.export_outlines(outlines)
    filename = csv_exporter.generate_filename("outlines", outlines[0].site.name)
    logger.info(f"导出大纲: user_id={current_user.id}, count={len(outlines)}")
    return csv_download(content, filename)


@router.get("/{outline_id}", response_model=OutlineResponse, summary="大纲详情")
async def get_outline(
    outline_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_owned_outline(db, outline_id, current_user.id)


@router.put("/{outline_id}", response_model=OutlineResponse, summary="编辑大纲")
async def update_outline(
    outline_id: int,
    data: OutlineUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    outline = await get_owned_outline(db, outline_id, current_user.id)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    if "seo_keywords" in update_data:
        update_data["seo_keywords"] = encode_keywords(update_data["seo_keywords"])

    for key, value in update_data.items():
        setattr(outline, key, value)
    await db.flush()

    logger.info(f"编辑大纲: id={outline_id}, fields={list(update_data.keys())}")
    return outline


@router.delete("/{outline_id}", summary="删除大纲")
async def delete_outline(
    outline_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """删除大纲及其下所有文章"""
    outline = await get_owned_outline(db, outline_id, current_user.id)
    await db.delete(outline)
    await db.flush()

    logger.info(f"删除大纲: id={outline_id}, user_id={current_user.id}")
    return {"message": "文章大纲已删除", "id": outline_id}
