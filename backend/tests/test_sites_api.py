"""站点 / 内容方针 / 大纲"""

from sqlalchemy import select

from app.core.site_crawler import CrawlResult
from app.models.article import ArticleOutline
from app.models.site import Site
from app.models.usage import TokenUsage

from conftest import auth_header, create_user


def _outline_text(titles: list[str]) -> str:
    blocks = [f"标题: {t}\n概要: 关于{t}的概要\nSEO关键词: 咖啡, {t}" for t in titles]
    return "\n---\n".join(blocks)


async def _create_site(client, headers, **overrides) -> dict:
    payload = {"name": "咖啡小站", "url": "https://coffee.example", "description": "咖啡知识"}
    payload.update(overrides)
    resp = await client.post("/api/sites", headers=headers, json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_site_crud(client, headers):
    site = await _create_site(client, headers)
    assert site["site_urls"] == []
    assert site["content_policy"] is None

    resp = await client.get("/api/sites", headers=headers)
    assert [s["id"] for s in resp.json()] == [site["id"]]

    resp = await client.put(f"/api/sites/{site['id']}", headers=headers, json={
        "description": "新的介绍",
    })
    assert resp.json()["description"] == "新的介绍"
    assert resp.json()["name"] == "咖啡小站"

    resp = await client.delete(f"/api/sites/{site['id']}", headers=headers)
    assert resp.status_code == 200
    resp = await client.get(f"/api/sites/{site['id']}", headers=headers)
    assert resp.status_code == 404


async def test_site_validation(client, headers):
    resp = await client.post("/api/sites", headers=headers, json={"name": "   "})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "请输入站点名称"

    resp = await client.post("/api/sites", headers=headers, json={
        "name": "站点", "url": "ftp://bad",
    })
    assert resp.status_code == 400
    assert resp.json()["detail"] == "请输入有效的 URL"

    site = await _create_site(client, headers, url="")
    assert site["url"] is None


async def test_sites_are_isolated_between_users(client, headers, session_factory):
    site = await _create_site(client, headers)
    intruder = await create_user(session_factory, "intruder@example.com")
    other_headers = auth_header(intruder)

    assert (await client.get("/api/sites", headers=other_headers)).json() == []
    for method, path in [
        ("GET", f"/api/sites/{site['id']}"),
        ("PUT", f"/api/sites/{site['id']}"),
        ("DELETE", f"/api/sites/{site['id']}"),
        ("POST", f"/api/sites/{site['id']}/crawl"),
        ("POST", f"/api/sites/{site['id']}/policy"),
        ("GET", f"/api/sites/{site['id']}/outlines"),
    ]:
        resp = await client.request(method, path, headers=other_headers, json={})
        assert resp.status_code == 404, (method, path, resp.text)


async def test_crawl_replaces_site_urls(client, headers, fake_crawler):
    site = await _create_site(client, headers)

    fake_crawler.result = CrawlResult(urls=["https://coffee.example/", "https://coffee.example/a"])
    resp = await client.post(f"/api/sites/{site['id']}/crawl", headers=headers)
    assert resp.status_code == 200, resp.text
    assert len(resp.json()["urls"]) == 2

    fake_crawler.result = CrawlResult(urls=["https://coffee.example/b"])
    await client.post(f"/api/sites/{site['id']}/crawl", headers=headers)

    detail = (await client.get(f"/api/sites/{site['id']}", headers=headers)).json()
    assert [u["url"] for u in detail["site_urls"]] == ["https://coffee.example/b"]
    assert fake_crawler.crawled == ["https://coffee.example", "https://coffee.example"]


async def test_crawl_errors(client, headers, fake_crawler):
    no_url = await _create_site(client, headers, url=None)
    resp = await client.post(f"/api/sites/{no_url['id']}/crawl", headers=headers)
    assert resp.status_code == 400

    site = await _create_site(client, headers)
    fake_crawler.result = CrawlResult(urls=[], error="无效的 URL 格式")
    resp = await client.post(f"/api/sites/{site['id']}/crawl", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "无效的 URL 格式"


async def test_policy_then_outlines_end_to_end(client, headers, user, fake_ai, db):
    """生成方针 → 生成 10 个大纲，其中一个与已有标题重复"""
    site = await _create_site(client, headers)

    fake_ai.responses.append("面向咖啡爱好者的内容方针")
    resp = await client.post(f"/api/sites/{site['id']}/policy", headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["content_policy"] == "面向咖啡爱好者的内容方针"
    assert resp.json()["tokens_used"] == 100
    assert "咖啡小站" in fake_ai.calls[0]["user"]

    db.add(ArticleOutline(
        site_id=site["id"], title="已有 标题", outline="旧概要", seo_keywords="旧",
    ))
    await db.commit()

    titles = [f"新标题{i}" for i in range(9)] + ["已有  标题"]
    fake_ai.responses.append(_outline_text(titles))
    resp = await client.post(
        f"/api/sites/{site['id']}/outlines", headers=headers, json={"count": 10}
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert len(body["outlines"]) == 9
    assert body["duplicates_removed"] == 1
    assert body["outlines"][0]["seo_keywords"] == ["咖啡", "新标题0"]
    assert "已有 标题" in fake_ai.calls[1]["user"]
    assert "面向咖啡爱好者的内容方针" in fake_ai.calls[1]["user"]

    result = await db.execute(
        select(ArticleOutline).where(ArticleOutline.site_id == site["id"])
    )
    assert len(result.scalars().all()) == 10

    usages = (await db.execute(
        select(TokenUsage).where(TokenUsage.user_id == user.id)
    )).scalars().all()
    assert [u.tokens_used for u in usages] == [100, 100]
    assert {u.ai_service for u in usages} == {"gpt-4"}

    listed = (await client.get(f"/api/sites/{site['id']}/outlines", headers=headers)).json()
    assert len(listed) == 10


async def test_outlines_require_policy(client, headers, fake_ai):
    site = await _create_site(client, headers)
    resp = await client.post(f"/api/sites/{site['id']}/outlines", headers=headers, json={})
    assert resp.status_code == 400
    assert fake_ai.calls == []


async def test_outline_count_bounds(client, headers):
    site = await _create_site(client, headers)
    for count in (0, 21):
        resp = await client.post(
            f"/api/sites/{site['id']}/outlines", headers=headers, json={"count": count}
        )
        assert resp.status_code == 400


async def test_quota_exhausted_blocks_generation(client, session_factory, fake_ai, db):
    capped = await create_user(session_factory, "capped@example.com", token_limit=0)
    headers = auth_header(capped)
    site = await _create_site(client, headers)

    resp = await client.post(f"/api/sites/{site['id']}/policy", headers=headers)
    assert resp.status_code == 429
    assert fake_ai.calls == []

    usages = (await db.execute(select(TokenUsage))).scalars().all()
    assert usages == []


async def test_missing_settings_and_unsupported_provider(client, session_factory, fake_ai, db):
    bare = await create_user(session_factory, "bare@example.com", with_settings=False)
    site = await _create_site(client, auth_header(bare))
    resp = await client.post(f"/api/sites/{site['id']}/policy", headers=auth_header(bare))
    assert resp.status_code == 400

    odd = await create_user(session_factory, "odd@example.com", ai_service="llama")
    site = await _create_site(client, auth_header(odd))
    resp = await client.post(f"/api/sites/{site['id']}/policy", headers=auth_header(odd))
    assert resp.status_code == 400
    assert fake_ai.calls == []


async def test_upstream_failure_returns_500(client, headers, fake_ai, db):
    site = await _create_site(client, headers)
    fake_ai.fail = True
    resp = await client.post(f"/api/sites/{site['id']}/policy", headers=headers)
    assert resp.status_code == 500
    assert "exploded" not in resp.text

    stored = await db.get(Site, site["id"])
    assert stored.content_policy is None


async def test_rate_outline(client, headers, fake_ai):
    site = await _create_site(client, headers)
    fake_ai.responses.extend(["方针", _outline_text(["唯一"])])
    await client.post(f"/api/sites/{site['id']}/policy", headers=headers)
    outline = (await client.post(
        f"/api/sites/{site['id']}/outlines", headers=headers, json={"count": 1}
    )).json()["outlines"][0]

    resp = await client.put(f"/api/sites/{site['id']}/outlines", headers=headers, json={
        "outline_id": outline["id"], "rating": 85,
    })
    assert resp.status_code == 200
    assert resp.json()["user_rating"] == 85

    resp = await client.put(f"/api/sites/{site['id']}/outlines", headers=headers, json={
        "outline_id": outline["id"], "rating": 101,
    })
    assert resp.status_code == 400

    resp = await client.put(f"/api/sites/{site['id']}/outlines", headers=headers, json={
        "outline_id": 999, "rating": 50,
    })
    assert resp.status_code == 404
