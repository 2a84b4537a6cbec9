"""文章生成 / 批量生成 / 导出 / CRUD"""

import csv
import io
from urllib.parse import quote

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import articles as articles_api
from app.models.article import Article, ArticleOutline
from app.models.site import Site
from app.models.usage import TokenUsage

from conftest import auth_header, create_user


@pytest.fixture
async def outline(db, user) -> ArticleOutline:
    site = Site(
        user_id=user.id, name="咖啡小站", url="https://coffee.example",
        content_policy="方针", site_urls=[], outlines=[],
    )
    site.outlines.append(ArticleOutline(
        title="咖啡豆选购指南", outline="从产地讲起", seo_keywords="咖啡豆,选购", articles=[],
    ))
    db.add(site)
    await db.commit()
    return site.outlines[0]


async def _usages(db) -> list[TokenUsage]:
    return list((await db.execute(select(TokenUsage).order_by(TokenUsage.id))).scalars().all())


async def test_generate_article(client, headers, outline, fake_ai, db):
    fake_ai.responses.append("# 咖啡豆选购指南\n\n正文")
    resp = await client.post("/api/articles", headers=headers, json={
        "outline_id": outline.id, "language": "en", "user_instructions": "多用例子",
    })
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["tokens_used"] == 100
    article = body["article"]
    assert article["language"] == "en"
    assert article["content"] == "# 咖啡豆选购指南\n\n正文"
    assert article["outline"]["site"]["name"] == "咖啡小站"

    prompt = fake_ai.calls[0]["user"]
    assert "咖啡豆选购指南" in prompt
    assert "咖啡豆, 选购" in prompt
    assert "多用例子" in prompt

    assert [u.tokens_used for u in await _usages(db)] == [100]


async def test_default_language_is_japanese(client, headers, outline):
    resp = await client.post("/api/articles", headers=headers, json={"outline_id": outline.id})
    assert resp.json()["article"]["language"] == "ja"


async def test_duplicate_language_conflicts_without_calling_ai(client, headers, outline, fake_ai, db):
    first = await client.post("/api/articles", headers=headers, json={
        "outline_id": outline.id, "language": "ja",
    })
    assert first.status_code == 200
    assert len(fake_ai.calls) == 1

    second = await client.post("/api/articles", headers=headers, json={
        "outline_id": outline.id, "language": "ja",
    })
    assert second.status_code == 409
    assert len(fake_ai.calls) == 1
    assert len(await _usages(db)) == 1

    count = (await db.execute(
        select(Article).where(Article.outline_id == outline.id)
    )).scalars().all()
    assert len(count) == 1


async def test_generate_for_foreign_outline_is_404(client, outline, session_factory, fake_ai):
    intruder = await create_user(session_factory, "intruder@example.com")
    resp = await client.post("/api/articles", headers=auth_header(intruder), json={
        "outline_id": outline.id,
    })
    assert resp.status_code == 404
    assert fake_ai.calls == []


async def test_generation_failure_returns_500(client, headers, outline, fake_ai, db):
    fake_ai.fail = True
    resp = await client.post("/api/articles", headers=headers, json={"outline_id": outline.id})
    assert resp.status_code == 500
    assert (await db.execute(select(Article))).scalars().all() == []
    assert await _usages(db) == []


async def test_bulk_generate(client, headers, outline, fake_ai, db):
    second = ArticleOutline(
        site_id=outline.site_id, title="手冲入门", outline="器具", seo_keywords="手冲",
    )
    db.add(second)
    db.add(Article(outline_id=outline.id, language="ja", content="已有"))
    await db.commit()

    resp = await client.post("/api/articles/bulk-generate", headers=headers, json={
        "outline_ids": [outline.id, second.id],
        "languages": ["ja", "en"],
    })
    assert resp.status_code == 200, resp.text
    body = resp.json()

    statuses = {(r["outline_id"], r["language"]): r["status"] for r in body["results"]}
    assert statuses == {
        (outline.id, "ja"): "skipped",
        (outline.id, "en"): "success",
        (second.id, "ja"): "success",
        (second.id, "en"): "success",
    }
    assert body["summary"] == {"total": 4, "success": 3, "skipped": 1, "errors": 0}
    assert body["total_tokens_used"] == 300
    assert len(fake_ai.calls) == 3

    assert [u.tokens_used for u in await _usages(db)] == [300]


async def test_bulk_generate_records_item_errors(client, headers, outline, fake_ai, db):
    fake_ai.fail = True
    resp = await client.post("/api/articles/bulk-generate", headers=headers, json={
        "outline_ids": [outline.id], "languages": ["ja", "en"],
    })
    body = resp.json()
    assert body["summary"] == {"total": 2, "success": 0, "skipped": 0, "errors": 2}
    assert body["total_tokens_used"] == 0
    assert await _usages(db) == []


async def test_bulk_generate_unknown_outline_is_404(client, headers, outline, fake_ai):
    resp = await client.post("/api/articles/bulk-generate", headers=headers, json={
        "outline_ids": [outline.id, 999], "languages": ["ja"],
    })
    assert resp.status_code == 404
    assert fake_ai.calls == []


async def test_bulk_generate_requires_languages(client, headers, outline):
    resp = await client.post("/api/articles/bulk-generate", headers=headers, json={
        "outline_ids": [outline.id], "languages": [],
    })
    assert resp.status_code == 400


async def test_bulk_generate_survives_failed_save(client, headers, outline, fake_ai, db, monkeypatch):
    real_commit = AsyncSession.commit
    commits = {"n": 0}

    async def flaky_commit(self):
        commits["n"] += 1
        if commits["n"] == 2:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        await real_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", flaky_commit)
    resp = await client.post("/api/articles/bulk-generate", headers=headers, json={
        "outline_ids": [outline.id], "languages": ["en", "fr", "de"],
    })
    monkeypatch.setattr(AsyncSession, "commit", real_commit)

    assert resp.status_code == 200, resp.text
    body = resp.json()
    statuses = {r["language"]: r["status"] for r in body["results"]}
    assert statuses == {"en": "success", "fr": "error", "de": "success"}
    assert body["summary"] == {"total": 3, "success": 2, "skipped": 0, "errors": 1}

    languages = (await db.execute(select(Article.language))).scalars().all()
    assert sorted(languages) == ["de", "en"]
    # 三次 AI 调用全部计费，包括保存失败的那一项
    assert len(fake_ai.calls) == 3
    assert [u.tokens_used for u in await _usages(db)] == [300]


def _miss_first_existence_check(monkeypatch):
    real_exists = articles_api._article_exists
    checks = {"n": 0}

    async def exists_after_first(db, outline_id, language):
        checks["n"] += 1
        if checks["n"] == 1:
            return False
        return await real_exists(db, outline_id, language)

    monkeypatch.setattr(articles_api, "_article_exists", exists_after_first)


async def test_concurrent_duplicate_is_409_and_still_charged(client, headers, outline, fake_ai, db, monkeypatch):
    db.add(Article(outline_id=outline.id, language="ja", content="并发写入"))
    await db.commit()
    _miss_first_existence_check(monkeypatch)

    resp = await client.post("/api/articles", headers=headers, json={
        "outline_id": outline.id, "language": "ja",
    })
    assert resp.status_code == 409
    assert len(fake_ai.calls) == 1
    assert [u.tokens_used for u in await _usages(db)] == [100]


async def test_bulk_concurrent_duplicate_is_skipped(client, headers, outline, fake_ai, db, monkeypatch):
    db.add(Article(outline_id=outline.id, language="ja", content="并发写入"))
    await db.commit()
    _miss_first_existence_check(monkeypatch)

    resp = await client.post("/api/articles/bulk-generate", headers=headers, json={
        "outline_ids": [outline.id], "languages": ["ja"],
    })
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["results"][0]["status"] == "skipped"
    assert body["summary"] == {"total": 1, "success": 0, "skipped": 1, "errors": 0}
    assert [u.tokens_used for u in await _usages(db)] == [100]


async def test_article_crud_and_rating(client, headers, outline):
    article = (await client.post("/api/articles", headers=headers, json={
        "outline_id": outline.id,
    })).json()["article"]

    resp = await client.put("/api/articles", headers=headers, json={
        "article_id": article["id"], "rating": 90,
    })
    assert resp.json()["user_rating"] == 90

    resp = await client.put(f"/api/articles/{article['id']}", headers=headers, json={
        "content": "改写后的正文",
    })
    assert resp.json()["content"] == "改写后的正文"
    assert resp.json()["user_rating"] == 90

    listed = (await client.get(
        "/api/articles", headers=headers, params={"outline_id": outline.id}
    )).json()
    assert [a["id"] for a in listed] == [article["id"]]

    resp = await client.delete(f"/api/articles/{article['id']}", headers=headers)
    assert resp.status_code == 200
    assert (await client.get(f"/api/articles/{article['id']}", headers=headers)).status_code == 404


async def test_export_formats(client, headers, outline, db):
    db.add(Article(outline_id=outline.id, language="ja", content="正文, 含逗号"))
    await db.commit()

    resp = await client.post("/api/articles/export", headers=headers, json={})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert quote("文章_咖啡小站_") in resp.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0][0] == "站点名称"
    assert rows[1][0] == "咖啡小站"
    assert "正文, 含逗号" in rows[1]

    resp = await client.post("/api/articles/export", headers=headers, json={
        "format": "wordpress",
    })
    assert resp.text.splitlines()[0].startswith("post_title,post_content")
    assert quote("_wordpress_") in resp.headers["content-disposition"]

    resp = await client.post("/api/articles/export", headers=headers, json={"format": "drupal"})
    assert resp.text.splitlines()[0] == "title,body,summary,status,type,tags,created"

    resp = await client.post("/api/articles/export", headers=headers, json={"format": "xml"})
    assert resp.status_code == 400


async def test_export_only_own_articles(client, outline, db, session_factory):
    db.add(Article(outline_id=outline.id, language="ja", content="正文"))
    await db.commit()

    intruder = await create_user(session_factory, "intruder@example.com")
    resp = await client.post("/api/articles/export", headers=auth_header(intruder), json={})
    assert resp.status_code == 404


async def test_outline_export_and_edit(client, headers, outline):
    resp = await client.post("/api/outlines/export", headers=headers, json={
        "site_id": outline.site_id,
    })
    assert resp.status_code == 200
    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[1][:4] == ["咖啡小站", "咖啡豆选购指南", "从产地讲起", "咖啡豆,选购"]

    resp = await client.put(f"/api/outlines/{outline.id}", headers=headers, json={
        "seo_keywords": ["新词", " 另一个 "],
    })
    assert resp.json()["seo_keywords"] == ["新词", "另一个"]

    resp = await client.delete(f"/api/outlines/{outline.id}", headers=headers)
    assert resp.status_code == 200
    assert (await client.get(f"/api/outlines/{outline.id}", headers=headers)).status_code == 404
