import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from app.models import Article, CrawlJob, CrawlJobStatus, CrawlSource, CrawlType
from app.services.crawler.errors import (
    ConfigurationError,
    ExtractionError,
    FetchError,
    JobStateError,
    NotFoundError,
)
from app.services.crawler import jobs as jobs_module
from app.services.crawler.jobs import CrawlJobService
from app.services.crawler.models import CrawlKind

URL = "https://shop.example.com/posts/omega-3"


async def _source(db, profile):
    source = CrawlSource(name="Shop blog", base_url="https://shop.example.com", crawl_type=CrawlType.article, config=profile)
    db.add(source)
    await db.commit()
    await db.refresh(source)
    return source


def test_create_jobs_normalizes_and_skips_duplicates_and_invalid(run_db, make_fetcher):
    async def scenario(db):
        service = CrawlJobService(db, make_fetcher())
        first = await service.create_jobs([f"{URL}/?utm_source=x", URL, "http://localhost/admin", "nonsense"])
        second = await service.create_jobs([URL])
        return first, second

    first, second = run_db(scenario)
    assert [job.url for job in first.created] == [URL]
    assert first.created[0].status == CrawlJobStatus.queued
    assert first.created[0].retry_count == 0
    assert first.duplicates == [URL]
    assert first.invalid == ["http://localhost/admin", "nonsense"]
    assert first.message == "Queued 1 URLs"
    assert second.created == []
    assert second.message == "All URLs have already been queued or crawled"


def test_create_jobs_rejects_empty_and_unknown_source(run_db, make_fetcher):
    async def scenario(db):
        service = CrawlJobService(db, make_fetcher())
        errors = []
        for call in (service.create_jobs([" "]), service.create_jobs(["ftp://x"]), service.create_jobs([URL], source_id=99)):
            try:
                await call
            except (ConfigurationError, NotFoundError) as exc:
                errors.append(type(exc))
        return errors

    assert run_db(scenario) == [ConfigurationError, ConfigurationError, NotFoundError]


def test_run_then_approve_creates_record_with_suffixed_slug(run_db, make_fetcher, article_html, article_profile):
    async def scenario(db):
        db.add(Article(title="Omega 3", slug="omega-3", content="", source_url="https://other.example.com/o3"))
        await db.commit()
        source = await _source(db, article_profile)
        service = CrawlJobService(db, make_fetcher({URL: article_html("Omega 3")}))

        job = (await service.create_jobs([URL], CrawlKind.article, source.id)).created[0]
        ran = await service.run_job(job.id)
        ran_status, extracted = ran.status, dict(ran.extracted_data)

        approved = await service.approve_job(job.id, {"excerpt": "Edited", "bogus": "ignored"}, category_id=4)
        article = (await db.execute(select(Article).where(Article.id == approved.created_item_id))).scalar_one()
        return ran_status, extracted, approved, article

    ran_status, extracted, approved, article = run_db(scenario)
    assert ran_status == CrawlJobStatus.pending_review
    assert extracted["title"] == "Omega 3"
    assert approved.status == CrawlJobStatus.success
    assert approved.processed_at is not None
    assert article.slug == "omega-3-1"
    assert article.excerpt == "Edited"
    assert article.category_id == 4
    assert article.source_url == URL


def test_run_is_only_allowed_from_queued(run_db, make_fetcher, article_html, article_profile):
    async def scenario(db):
        source = await _source(db, article_profile)
        service = CrawlJobService(db, make_fetcher({URL: article_html()}))
        job = (await service.create_jobs([URL], CrawlKind.article, source.id)).created[0]
        await service.run_job(job.id)
        with pytest.raises(JobStateError):
            await service.run_job(job.id)
        with pytest.raises(NotFoundError):
            await service.run_job(12345)

    run_db(scenario)


def test_approve_requires_pending_review(run_db, make_fetcher):
    async def scenario(db):
        service = CrawlJobService(db, make_fetcher())
        job = (await service.create_jobs([URL])).created[0]
        with pytest.raises(JobStateError):
            await service.approve_job(job.id)

    run_db(scenario)


def test_failed_fetch_marks_job_failed_and_frees_url(run_db, make_fetcher):
    async def scenario(db):
        fetcher = make_fetcher({URL: FetchError("HTTP 503: Service Unavailable", url=URL, status_code=503)})
        service = CrawlJobService(db, fetcher)
        job = (await service.create_jobs([URL])).created[0]
        failed = await service.run_job(job.id)
        retry = (await service.create_jobs([URL])).created
        return failed, retry

    failed, retry = run_db(scenario)
    assert failed.status == CrawlJobStatus.failed
    assert failed.error_message == "HTTP 503: Service Unavailable"
    assert len(retry) == 1
    assert retry[0].retry_count == 1


def test_existing_record_makes_job_duplicate(run_db, make_fetcher):
    async def scenario(db):
        db.add(Article(title="Omega", slug="omega", content="", source_url=URL))
        await db.commit()
        fetcher = make_fetcher()
        service = CrawlJobService(db, fetcher)
        job = (await service.create_jobs([URL])).created[0]
        return await service.run_job(job.id), fetcher.calls

    job, calls = run_db(scenario)
    assert job.status == CrawlJobStatus.duplicate
    assert job.created_item_id is not None
    assert calls == []


def test_job_without_source_uses_fallback_selectors(run_db, make_fetcher):
    async def scenario(db):
        html = "<html><body><main><h1>Fallback Post</h1><p>Text</p></main></body></html>"
        service = CrawlJobService(db, make_fetcher({URL: html}))
        job = (await service.create_jobs([URL])).created[0]
        return await service.run_job(job.id)

    job = run_db(scenario)
    assert job.status == CrawlJobStatus.pending_review
    assert job.extracted_data["title"] == "Fallback Post"


def test_list_and_delete_jobs(run_db, make_fetcher):
    async def scenario(db):
        service = CrawlJobService(db, make_fetcher())
        created = (await service.create_jobs([f"{URL}-{n}" for n in range(3)], CrawlKind.product)).created
        page, total = await service.list_jobs(kind=CrawlKind.product, page=1, limit=2)
        none, none_total = await service.list_jobs(status=CrawlJobStatus.failed)

        processing = created[0]
        processing.status = CrawlJobStatus.processing
        await db.commit()
        with pytest.raises(JobStateError):
            await service.delete_job(processing.id)

        await service.delete_job(created[1].id)
        remaining = (await db.execute(select(CrawlJob.id))).scalars().all()
        return len(page), total, none, none_total, sorted(remaining), [job.id for job in created]

    page_len, total, none, none_total, remaining, ids = run_db(scenario)
    assert page_len == 2
    assert total == 3
    assert none == [] and none_total == 0
    assert remaining == sorted([ids[0], ids[2]])


def test_only_one_active_job_per_url_is_stored(run_db):
    async def scenario(db):
        db.add_all([
            CrawlJob(url=URL, status=CrawlJobStatus.failed),
            CrawlJob(url=URL, status=CrawlJobStatus.failed),
            CrawlJob(url=URL, status=CrawlJobStatus.queued),
        ])
        await db.commit()

        db.add(CrawlJob(url=URL, status=CrawlJobStatus.pending_review))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()
        return (await db.execute(select(CrawlJob.status).where(CrawlJob.url == URL))).scalars().all()

    statuses = run_db(scenario)
    assert sorted(status.value for status in statuses) == ["failed", "failed", "queued"]


def test_concurrently_claimed_url_is_reported_duplicate(run_db, make_fetcher, monkeypatch):
    other = "https://shop.example.com/posts/vitamin-c"

    async def scenario(db):
        db.add(CrawlJob(url=URL, status=CrawlJobStatus.queued))
        await db.commit()
        # Hide the queued job from the pre-insert check, as if it landed after it
        monkeypatch.setattr(jobs_module, "ACTIVE_JOB_STATUSES", (CrawlJobStatus.processing,))
        submission = await CrawlJobService(db, make_fetcher()).create_jobs([URL, other])
        count = (await db.execute(select(func.count(CrawlJob.id)))).scalar()
        return submission, count

    submission, count = run_db(scenario)
    assert [job.url for job in submission.created] == [other]
    assert submission.created[0].id is not None
    assert submission.duplicates == [URL]
    assert count == 2


def test_approve_with_unsluggable_title_keeps_job_for_review(run_db, make_fetcher, article_html, article_profile):
    async def scenario(db):
        source = await _source(db, article_profile)
        service = CrawlJobService(db, make_fetcher({URL: article_html()}))
        job = (await service.create_jobs([URL], CrawlKind.article, source.id)).created[0]
        await service.run_job(job.id)
        with pytest.raises(ExtractionError):
            await service.approve_job(job.id, {"title": "健康食品"})
        articles = (await db.execute(select(func.count(Article.id)))).scalar()
        return (await service.get_job(job.id)).status, articles

    status, articles = run_db(scenario)
    assert status == CrawlJobStatus.pending_review
    assert articles == 0
