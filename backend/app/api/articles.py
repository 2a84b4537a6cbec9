"""
文章相关 API 路由
单篇 / 批量生成、评分、CRUD、CSV 导出
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    build_provider,
    get_current_user,
    get_owned_article,
    get_owned_outline,
    get_provider_factory,
    require_quota,
    require_user_settings,
)
from app.api.outlines import csv_download
from app.core import csv_exporter
from app.core.ai_generator import ProviderFactory
from app.core.ai_providers.base import BaseAIProvider, OutlineDraft
from app.core.token_manager import TokenManager
from app.database.connection import get_db
from app.models.article import Article, ArticleOutline, decode_keywords
from app.models.site import Site
from app.models.user import User
from app.schemas.article import (
    ArticleBulkGenerateRequest,
    ArticleBulkGenerateResponse,
    ArticleExportRequest,
    ArticleGenerateRequest,
    ArticleGenerateResponse,
    ArticleRateRequest,
    ArticleResponse,
    ArticleUpdateRequest,
    BulkItemResult,
    BulkSummary,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/articles", tags=["文章管理"])

DUPLICATE_DETAIL = "该大纲已存在此语言的文章"


def _to_draft(outline: ArticleOutline) -> OutlineDraft:
    return OutlineDraft(
        title=outline.title,
        outline=outline.outline,
        seo_keywords=decode_keywords(outline.seo_keywords),
    )


async def _article_exists(db: AsyncSession, outline_id: int, language: str) -> bool:
    result = await db.execute(
        select(Article.id).where(Article.outline_id == outline_id, Article.language == language)
    )
    return result.first() is not None


def _owned_articles_query(user_id: int):
    return (
        select(Article)
        .join(ArticleOutline, Article.outline_id == ArticleOutline.id)
        .join(Site, ArticleOutline.site_id == Site.id)
        .where(Site.user_id == user_id)
    )


# ==================== 列表 / 生成 / 评分 ====================

@router.get("", response_model=list[ArticleResponse], summary="文章列表")
async def list_articles(
    site_id: Optional[int] = Query(None, description="按站点筛选"),
    outline_id: Optional[int] = Query(None, description="按大纲筛选"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    stmt = _owned_articles_query(current_user.id)
    if site_id is not None:
        stmt = stmt.where(Site.id == site_id)
    if outline_id is not None:
        stmt = stmt.where(Article.outline_id == outline_id)
    stmt = stmt.order_by(Article.created_at.desc(), Article.id.desc())

    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("", response_model=ArticleGenerateResponse, summary="生成文章")
async def generate_article(
    data: ArticleGenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    """
    根据大纲生成指定语言的文章
    同一大纲同一语言只允许一篇，已存在时直接返回 409，不调用 AI
    """
    user_id = current_user.id
    outline = await get_owned_outline(db, data.outline_id, user_id)
    if await _article_exists(db, outline.id, data.language):
        raise HTTPException(status_code=409, detail=DUPLICATE_DETAIL)

    user_settings = await require_user_settings(db, user_id)
    ai_service = user_settings.ai_service
    token_manager = TokenManager(db)
    await require_quota(token_manager, user_id)

    provider = build_provider(provider_factory, ai_service)
    try:
        content = await provider.generate_article_content(
            _to_draft(outline), data.language, data.user_instructions
        )
    except Exception as e:
        logger.error(
            f"文章生成失败: outline_id={outline.id}, language={data.language}, error={e}",
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="文章生成失败")

    article = Article(
        outline=outline,
        language=data.language,
        content=content,
        user_instructions=data.user_instructions,
    )
    db.add(article)
    tokens_used = provider.get_token_usage()
    try:
        await db.flush()
    except SQLAlchemyError as e:
        await db.rollback()
        # AI 已经调用过，保存失败也要计费
        await token_manager.record_usage(user_id, ai_service, tokens_used)
        await db.commit()
        if isinstance(e, IntegrityError) and await _article_exists(
            db, data.outline_id, data.language
        ):
            # 并发请求抢先写入了同一 (大纲, 语言)
            logger.warning(
                f"文章重复写入被拒绝: outline_id={data.outline_id}, language={data.language}"
            )
            raise HTTPException(status_code=409, detail=DUPLICATE_DETAIL)
        logger.error(
            f"文章保存失败: outline_id={data.outline_id}, language={data.language}, error={e}"
        )
        raise HTTPException(status_code=500, detail="文章保存失败")

    await token_manager.record_usage(user_id, ai_service, tokens_used)

    logger.info(
        f"文章已生成: id={article.id}, outline_id={outline.id}, "
        f"language={data.language}, tokens={tokens_used}"
    )
    return ArticleGenerateResponse(article=article, tokens_used=tokens_used)


@router.put("", response_model=ArticleResponse, summary="文章评分")
async def rate_article(
    data: ArticleRateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await get_owned_article(db, data.article_id, current_user.id)
    article.user_rating = data.rating
    await db.flush()
    return article


async def _bulk_generate_one(
    db: AsyncSession,
    provider: BaseAIProvider,
    outline_id: int,
    draft: OutlineDraft,
    language: str,
    user_instructions: Optional[str],
) -> BulkItemResult:
    """生成并提交单项，任何失败都转成结果，不向外抛出"""
    try:
        if await _article_exists(db, outline_id, language):
            return BulkItemResult(
                outline_id=outline_id, language=language, status="skipped", reason="已存在",
            )
        content = await provider.generate_article_content(draft, language, user_instructions)
    except Exception as e:
        logger.error(f"批量生成单项失败: outline_id={outline_id}, language={language}, error={e}")
        return BulkItemResult(
            outline_id=outline_id, language=language, status="error", reason="文章生成失败",
        )

    article = Article(
        outline_id=outline_id,
        language=language,
        content=content,
        user_instructions=user_instructions,
    )
    db.add(article)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        try:
            duplicate = isinstance(e, IntegrityError) and await _article_exists(
                db, outline_id, language
            )
        except SQLAlchemyError:
            duplicate = False
        if duplicate:
            return BulkItemResult(
                outline_id=outline_id, language=language, status="skipped", reason="已存在",
            )
        logger.error(f"批量生成单项保存失败: outline_id={outline_id}, language={language}, error={e}")
        return BulkItemResult(
            outline_id=outline_id, language=language, status="error", reason="文章保存失败",
        )

    return BulkItemResult(
        outline_id=outline_id, language=language, status="success", article_id=article.id,
    )


@router.post("/bulk-generate", response_model=ArticleBulkGenerateResponse, summary="批量生成文章")
async def bulk_generate_articles(
    data: ArticleBulkGenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    """
    对每个大纲 × 每种语言生成文章
    已存在的组合跳过；单项失败只记录在结果中，不影响其他项
    """
    user_id = current_user.id
    outline_ids = list(dict.fromkeys(data.outline_ids))
    languages = list(dict.fromkeys(data.languages))

    result = await db.execute(
        select(ArticleOutline)
        .join(Site, ArticleOutline.site_id == Site.id)
        .where(ArticleOutline.id.in_(outline_ids), Site.user_id == user_id)
    )
    outlines = {o.id: o for o in result.scalars().all()}
    if len(outlines) != len(outline_ids):
        raise HTTPException(status_code=404, detail="部分文章大纲不存在")

    user_settings = await require_user_settings(db, user_id)
    ai_service = user_settings.ai_service
    token_manager = TokenManager(db)
    await require_quota(token_manager, user_id)

    provider = build_provider(provider_factory, ai_service)
    # 逐项提交，回滚只影响当前项，所以先取出大纲内容
    drafts = {outline_id: _to_draft(outlines[outline_id]) for outline_id in outline_ids}

    results: list[BulkItemResult] = []
    try:
        for outline_id in outline_ids:
            for language in languages:
                results.append(await _bulk_generate_one(
                    db, provider, outline_id, drafts[outline_id],
                    language, data.user_instructions,
                ))
    finally:
        # 已经花掉的 token 无论循环是否中断都要入账
        total_tokens = provider.get_token_usage()
        if total_tokens > 0:
            await token_manager.record_usage(user_id, ai_service, total_tokens)
            await db.commit()

    summary = BulkSummary(
        total=len(results),
        success=sum(1 for r in results if r.status == "success"),
        skipped=sum(1 for r in results if r.status == "skipped"),
        errors=sum(1 for r in results if r.status == "error"),
    )
    logger.info(
        f"批量生成完成: user_id={user_id}, success={summary.success}, "
        f"skipped={summary.skipped}, errors={summary.errors}, tokens={total_tokens}"
    )
    return ArticleBulkGenerateResponse(
        results=results, summary=summary, total_tokens_used=total_tokens
    )


# ==================== 导出 ====================

@router.post("/export", summary="导出文章 CSV")
async def export_articles(
    data: ArticleExportRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    导出格式：standard（标准） / wordpress / drupal
    指定 article_ids 时优先，其次按 site_id，都不传则导出全部文章
    """
    stmt = _owned_articles_query(current_user.id)
    if data.article_ids:
        stmt = stmt.where(Article.id.in_(data.article_ids))
    elif data.site_id is not None:
        stmt = stmt.where(Site.id == data.site_id)
    stmt = stmt.order_by(Article.created_at.desc(), Article.id.desc())

    result = await db.execute(stmt)
    articles = result.scalars().all()
    if not articles:
        raise HTTPException(status_code=404, detail="没有可导出的文章")

    if data.format == "wordpress":
        content = csv_exporter.export_for_wordpress(articles)
    elif data.format == "drupal":
        content = csv_exporter.export_for_drupal(articles)
    else:
        options = csv_exporter.ExportOptions(**data.options.model_dump()) if data.options else None
        content = csv_exporter.export_articles(articles, options)

    filename = csv_exporter.generate_filename(
        "articles", articles[0].outline.site.name, data.format
    )
    logger.info(
        f"导出文章: user_id={current_user.id}, count={len(articles)}, format={data.format}"
    )
    return csv_download(content, filename)


# ==================== 单篇 CRUD ====================

@router.get("/{article_id}", response_model=ArticleResponse, summary="文章详情")
async def get_article(
    article_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_owned_article(db, article_id, current_user.id)


@router.put("/{article_id}", response_model=ArticleResponse, summary="编辑文章")
async def update_article(
    article_id: int,
    data: ArticleUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await get_owned_article(db, article_id, current_user.id)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in update_data.items():
        setattr(article, key, value)
    await db.flush()

    logger.info(f"编辑文章: id={article_id}, fields={list(update_data.keys())}")
    return article


@router.delete("/{article_id}", summary="删除文章")
async def delete_article(
    article_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await get_owned_article(db, article_id, current_user.id)
    await db.delete(article)
    await db.flush()

    logger.info(f"删除文章: id={article_id}, user_id={current_user.id}")
    return {"message": "文章已删除", "id": article_id}
