"""
站点相关 API 路由
站点 CRUD、站点爬取、内容方针生成、大纲生成与评分
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    build_provider,
    get_current_user,
    get_owned_site,
    get_provider_factory,
    get_site_crawler,
    require_quota,
    require_user_settings,
)
from app.core.ai_generator import ProviderFactory
from app.core.ai_providers.base import SiteInfo
from app.core.site_crawler import SiteCrawler
from app.core.token_manager import TokenManager
from app.database.connection import get_db
from app.models.article import ArticleOutline, encode_keywords
from app.models.site import Site, SiteUrl
from app.models.user import User
from app.schemas.outline import (
    OutlineGenerateRequest,
    OutlineGenerateResponse,
    OutlineRateRequest,
    OutlineResponse,
)
from app.schemas.site import (
    CrawlResponse,
    PolicyResponse,
    SiteCreateRequest,
    SiteDetailResponse,
    SiteResponse,
    SiteUpdateRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sites", tags=["站点管理"])


# ==================== 站点 CRUD ====================

@router.get("", response_model=list[SiteResponse], summary="站点列表")
async def list_sites(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Site)
        .where(Site.user_id == current_user.id)
        .order_by(Site.created_at.desc(), Site.id.desc())
    )
    return result.scalars().all()


@router.post("", response_model=SiteResponse, status_code=201, summary="创建站点")
async def create_site(
    data: SiteCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    site = Site(
        user_id=current_user.id,
        name=data.name,
        url=data.url,
        description=data.description,
        site_urls=[],
        outlines=[],
    )
    db.add(site)
    await db.flush()

    logger.info(f"创建站点: id={site.id}, name={site.name}, user_id={current_user.id}")
    return site


@router.get("/{site_id}", response_model=SiteDetailResponse, summary="站点详情")
async def get_site(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_owned_site(db, site_id, current_user.id)


@router.put("/{site_id}", response_model=SiteResponse, summary="更新站点")
async def update_site(
    site_id: int,
    data: SiteUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    site = await get_owned_site(db, site_id, current_user.id)
    update_data = data.model_dump(exclude_unset=True)
    if "name" in update_data and update_data["name"] is None:
        raise HTTPException(status_code=400, detail="请输入站点名称")

    for key, value in update_data.items():
        setattr(site, key, value)
    await db.flush()

    logger.info(f"更新站点: id={site.id}, fields={list(update_data.keys())}")
    return site


@router.delete("/{site_id}", summary="删除站点")
async def delete_site(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """删除站点及其 URL、大纲、文章"""
    site = await get_owned_site(db, site_id, current_user.id)
    await db.delete(site)
    await db.flush()

    logger.info(f"删除站点: id={site_id}, user_id={current_user.id}")
    return {"message": "站点已删除", "id": site_id}


# ==================== 爬取与内容方针 ====================

@router.post("/{site_id}/crawl", response_model=CrawlResponse, summary="爬取站点 URL")
async def crawl_site(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    crawler: SiteCrawler = Depends(get_site_crawler),
):
    """爬取同域名页面，并整体替换站点已有的 URL 列表"""
    site = await get_owned_site(db, site_id, current_user.id)
    if not site.url:
        raise HTTPException(status_code=400, detail="站点未设置 URL")

    try:
        crawl_result = await crawler.crawl_site(site.url)
    except Exception as e:
        logger.error(f"站点爬取异常: site_id={site_id}, error={e}", exc_info=True)
        raise HTTPException(status_code=500, detail="站点爬取失败")
    if crawl_result.error:
        raise HTTPException(status_code=400, detail=crawl_result.error)

    site.site_urls.clear()
    await db.flush()
    new_urls = [SiteUrl(url=url, is_active=True) for url in crawl_result.urls]
    site.site_urls.extend(new_urls)
    await db.flush()

    logger.info(f"站点爬取完成: site_id={site_id}, urls={len(new_urls)}")
    return CrawlResponse(message=f"已获取 {len(new_urls)} 个 URL", urls=new_urls)


@router.post("/{site_id}/policy", response_model=PolicyResponse, summary="生成内容方针")
async def generate_policy(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    site = await get_owned_site(db, site_id, current_user.id)
    user_settings = await require_user_settings(db, current_user.id)
    token_manager = TokenManager(db)
    await require_quota(token_manager, current_user.id)

    provider = build_provider(provider_factory, user_settings.ai_service)
    site_info = SiteInfo(
        name=site.name,
        url=site.url,
        description=site.description,
        urls=[u.url for u in site.site_urls if u.is_active],
    )
    try:
        content_policy = await provider.generate_content_policy(site_info)
    except Exception as e:
        logger.error(f"内容方针生成失败: site_id={site_id}, error={e}", exc_info=True)
        raise HTTPException(status_code=500, detail="内容方针生成失败")

    site.content_policy = content_policy
    tokens_used = provider.get_token_usage()
    await token_manager.record_usage(current_user.id, user_settings.ai_service, tokens_used)

    logger.info(f"内容方针已生成: site_id={site_id}, tokens={tokens_used}")
    return PolicyResponse(site=site, content_policy=content_policy, tokens_used=tokens_used)


# ==================== 大纲 ====================

def _normalize_title(title: str) -> str:
    return " ".join(title.split()).casefold()


@router.get("/{site_id}/outlines", response_model=list[OutlineResponse], summary="站点大纲列表")
async def list_outlines(
    site_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    site = await get_owned_site(db, site_id, current_user.id)
    return site.outlines


@router.post("/{site_id}/outlines", response_model=OutlineGenerateResponse, summary="生成文章大纲")
async def generate_outlines(
    site_id: int,
    data: OutlineGenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    """
    根据内容方针生成大纲
    与已有标题或本批次内先出现的标题重复的大纲不会保存
    """
    site = await get_owned_site(db, site_id, current_user.id)
    if not site.content_policy:
        raise HTTPException(status_code=400, detail="请先生成内容方针")

    user_settings = await require_user_settings(db, current_user.id)
    token_manager = TokenManager(db)
    await require_quota(token_manager, current_user.id)

    existing_titles = [o.title for o in site.outlines]
    provider = build_provider(provider_factory, user_settings.ai_service)
    try:
        drafts = await provider.generate_article_outlines(
            site.content_policy, data.count, existing_titles
        )
    except Exception as e:
        logger.error(f"大纲生成失败: site_id={site_id}, error={e}", exc_info=True)
        raise HTTPException(status_code=500, detail="文章大纲生成失败")

    seen = {_normalize_title(t) for t in existing_titles}
    saved: list[ArticleOutline] = []
    duplicates = 0
    for draft in drafts:
        key = _normalize_title(draft.title)
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        outline = ArticleOutline(
            title=draft.title,
            outline=draft.outline,
            seo_keywords=encode_keywords(draft.seo_keywords),
            articles=[],
        )
        site.outlines.append(outline)
        saved.append(outline)
    await db.flush()

    tokens_used = provider.get_token_usage()
    await token_manager.record_usage(current_user.id, user_settings.ai_service, tokens_used)

    if duplicates:
        logger.info(f"大纲生成: site_id={site_id}，丢弃 {duplicates} 个重复标题")
    logger.info(f"大纲生成完成: site_id={site_id}, saved={len(saved)}, tokens={tokens_used}")
    return OutlineGenerateResponse(
        outlines=saved, tokens_used=tokens_used, duplicates_removed=duplicates
    )


@router.put("/{site_id}/outlines", response_model=OutlineResponse, summary="大纲评分")
async def rate_outline(
    site_id: int,
    data: OutlineRateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    site = await get_owned_site(db, site_id, current_user.id)
    outline = next((o for o in site.outlines if o.id == data.outline_id), None)
    if outline is None:
        raise HTTPException(status_code=404, detail="文章大纲不存在")

    outline.user_rating = data.rating
    await db.flush()
    return outline
