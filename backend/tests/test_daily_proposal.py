"""每日提案批处理与调度器"""

import pytest
from sqlalchemy import select

from app.core.daily_proposal import DailyProposalService, QuotaExceededError
from app.core.task_scheduler import DAILY_PROPOSAL_JOB_ID, TaskScheduler
from app.models.article import ArticleOutline
from app.models.site import Site
from app.models.usage import TokenUsage

from conftest import create_user


def _proposal_text(*titles: str) -> str:
    return "\n---\n".join(
        f"标题: {t}\n概要: {t} 的概要\nSEO关键词: 提案, {t}" for t in titles
    )


async def _add_site(session_factory, user_id: int, name: str, policy=None) -> int:
    async with session_factory() as session:
        site = Site(user_id=user_id, name=name, content_policy=policy, site_urls=[], outlines=[])
        session.add(site)
        await session.commit()
        return site.id


@pytest.fixture
def service(session_factory, fake_email, fake_ai) -> DailyProposalService:
    return DailyProposalService(
        session_factory=session_factory,
        email_service=fake_email,
        provider_factory=fake_ai,
        proposal_count=3,
    )


async def test_batch_sends_to_opted_in_users(service, session_factory, fake_email, fake_ai):
    alice = await create_user(session_factory, "alice@example.com")
    bob = await create_user(session_factory, "bob@example.com", email_notifications=False)
    carol = await create_user(session_factory, "carol@example.com")
    await _add_site(session_factory, alice.id, "Alice 的站点", policy="方针 A")
    await _add_site(session_factory, bob.id, "Bob 的站点", policy="方针 B")
    # 没有内容方针的站点不参与
    await _add_site(session_factory, carol.id, "Carol 的站点")

    fake_ai.responses.append(_proposal_text("提案一", "提案二", "提案三", "提案四"))
    summary = await service.generate_and_send_daily_proposals()

    assert summary == {"sent": 1, "skipped": 0, "failed": 0}
    assert len(fake_email.sent) == 1
    mail = fake_email.sent[0]
    assert mail["to"] == "alice@example.com"
    assert mail["site_name"] == "Alice 的站点"
    assert [p.title for p in mail["proposals"]] == ["提案一", "提案二", "提案三"]


async def test_batch_uses_existing_titles_and_records_usage(
    service, session_factory, fake_ai, db
):
    alice = await create_user(session_factory, "alice@example.com")
    site_id = await _add_site(session_factory, alice.id, "站点", policy="方针")
    db.add(ArticleOutline(site_id=site_id, title="老标题", outline="概要", seo_keywords="k"))
    await db.commit()

    fake_ai.responses.append(_proposal_text("新提案"))
    await service.generate_and_send_daily_proposals()

    assert "老标题" in fake_ai.calls[0]["user"]
    usages = (await db.execute(select(TokenUsage))).scalars().all()
    assert [(u.user_id, u.tokens_used) for u in usages] == [(alice.id, 100)]

    # 提案只发邮件，不落库
    outlines = (await db.execute(select(ArticleOutline))).scalars().all()
    assert [o.title for o in outlines] == ["老标题"]


async def test_batch_continues_after_failures(service, session_factory, fake_ai, fake_email):
    first = await create_user(session_factory, "first@example.com")
    second = await create_user(session_factory, "second@example.com")
    await _add_site(session_factory, first.id, "站点一", policy="方针")
    await _add_site(session_factory, second.id, "站点二", policy="方针")

    # 第一个用户拿到无法解析的输出，第二个正常
    fake_ai.responses.extend(["无法解析的内容", _proposal_text("可用提案")])
    summary = await service.generate_and_send_daily_proposals()

    assert summary == {"sent": 1, "skipped": 0, "failed": 1}
    assert [m["to"] for m in fake_email.sent] == ["second@example.com"]


async def test_batch_skips_users_over_quota(service, session_factory, fake_ai, fake_email):
    capped = await create_user(session_factory, "capped@example.com", token_limit=0)
    await _add_site(session_factory, capped.id, "站点", policy="方针")

    summary = await service.generate_and_send_daily_proposals()

    assert summary == {"sent": 0, "skipped": 1, "failed": 0}
    assert fake_ai.calls == []
    assert fake_email.sent == []


async def test_email_failure_counts_as_failed_and_records_nothing(
    service, session_factory, fake_email, fake_ai, db
):
    alice = await create_user(session_factory, "alice@example.com")
    await _add_site(session_factory, alice.id, "站点", policy="方针")
    fake_email.fail = True
    fake_ai.responses.append(_proposal_text("提案"))

    summary = await service.generate_and_send_daily_proposals()

    assert summary == {"sent": 0, "skipped": 0, "failed": 1}
    assert (await db.execute(select(TokenUsage))).scalars().all() == []


async def test_batch_picks_most_recently_updated_site(service, session_factory, fake_ai, fake_email):
    alice = await create_user(session_factory, "alice@example.com")
    await _add_site(session_factory, alice.id, "旧站点", policy="旧方针")
    await _add_site(session_factory, alice.id, "新站点", policy="新方针")

    fake_ai.responses.append(_proposal_text("提案"))
    await service.generate_and_send_daily_proposals()

    assert fake_email.sent[0]["site_name"] == "新站点"
    assert "新方针" in fake_ai.calls[0]["user"]


async def test_manual_generation_raises(service, session_factory, fake_ai):
    alice = await create_user(session_factory, "alice@example.com", token_limit=0)
    site_id = await _add_site(session_factory, alice.id, "站点", policy="方针")
    no_policy = await _add_site(session_factory, alice.id, "空站点")

    with pytest.raises(QuotaExceededError):
        await service.generate_proposals_for_user(alice.id, site_id)
    with pytest.raises(ValueError):
        await service.generate_proposals_for_user(alice.id, no_policy)
    with pytest.raises(ValueError):
        await service.generate_proposals_for_user(9999, site_id)


async def test_manual_generation_returns_proposals(service, session_factory, fake_ai, fake_email):
    alice = await create_user(session_factory, "alice@example.com", email_notifications=False)
    site_id = await _add_site(session_factory, alice.id, "站点", policy="方针")
    fake_ai.responses.append(_proposal_text("甲", "乙"))

    proposals = await service.generate_proposals_for_user(alice.id, site_id)

    assert [p.title for p in proposals] == ["甲", "乙"]
    assert fake_email.sent[0]["to"] == "alice@example.com"


async def test_scheduler_registers_daily_job():
    calls = []

    class _StubService:
        async def generate_and_send_daily_proposals(self):
            calls.append("run")
            return {"sent": 0, "skipped": 0, "failed": 0}

    scheduler = TaskScheduler(service_factory=_StubService)
    scheduler.start()
    try:
        assert scheduler.running
        job = scheduler.scheduler.get_job(DAILY_PROPOSAL_JOB_ID)
        assert job is not None
        assert scheduler.next_run_time() is not None

        await scheduler._run_daily_proposals()
        assert calls == ["run"]
    finally:
        scheduler.shutdown()
    assert not scheduler.running


async def test_scheduler_job_swallows_errors():
    class _BrokenService:
        async def generate_and_send_daily_proposals(self):
            raise RuntimeError("boom")

    scheduler = TaskScheduler(service_factory=_BrokenService)
    await scheduler._run_daily_proposals()
