import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from portal.config.settings import AuthMode
from portal.main import create_app
from portal.v1.core.rate_limit import RateLimiter
from portal.v1.infra.jobs.handlers import DevelopmentResult, JobTypes
from portal.v1.infra.jobs.models import JobPriority, JobStatus

ENDPOINT = "/v1/cron/process-jobs"


def _development_payload(n: int = 0) -> dict:
    return {
        "project_id": f"00000000-0000-0000-0000-{n:012d}",
        "user_id": "user-1",
        "requirements": {"pages": ["home"]},
    }


@pytest.fixture
def production_settings(settings):
    return settings.model_copy(
        update={"environment": "production", "auth_mode": AuthMode.PROXY}
    )


@pytest.fixture
async def production_client(production_settings, database, agent):
    app = create_app(
        settings=production_settings,
        database=database,
        rate_limiter=RateLimiter(),
        agent=agent,
    )
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


async def test_scheduled_trigger_processes_batch(async_client, app, cron_headers):
    service_store = app.state.job_store
    for n in range(7):
        await service_store.create_job(
            JobTypes.PROJECT_DEVELOPMENT, _development_payload(n)
        )

    response = await async_client.get(ENDPOINT, headers=cron_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["processed"] == 5
    assert "errors" not in body
    assert body["stats"]["completed"] == 5
    assert body["stats"]["pending"] == 2


async def test_empty_queue(async_client, cron_headers):
    response = await async_client.post(ENDPOINT, headers=cron_headers)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "processed": 0,
        "stats": {
            "pending": 0,
            "processing": 0,
            "completed": 0,
            "failed": 0,
            "cancelled": 0,
        },
    }


async def test_job_errors_are_reported(async_client, app, agent, cron_headers):
    agent.outcomes = [DevelopmentResult(success=False, errors=["build failed"])]
    job = await app.state.job_store.create_job(
        JobTypes.PROJECT_DEVELOPMENT, _development_payload(), priority=JobPriority.HIGH
    )

    response = await async_client.post(ENDPOINT, headers=cron_headers)

    body = response.json()
    assert response.status_code == 200
    assert body["processed"] == 1
    assert body["errors"] == [f"{job.id}: build failed"]
    assert (await app.state.job_store.get_job(job.id)).status == JobStatus.PENDING.value


async def test_development_get_skips_secret(async_client):
    response = await async_client.get(ENDPOINT)

    assert response.status_code == 200
    assert response.json()["success"] is True


async def test_development_post_needs_credentials(async_client):
    response = await async_client.post(ENDPOINT)

    assert response.status_code == 401


async def test_development_post_accepts_dev_key(settings, database, agent):
    app = create_app(
        settings=settings.model_copy(update={"dev_test_key": "let-me-in"}),
        database=database,
        rate_limiter=RateLimiter(),
        agent=agent,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        accepted = await client.post(ENDPOINT, headers={"X-Dev-Key": "let-me-in"})
        rejected = await client.post(ENDPOINT, headers={"X-Dev-Key": "wrong"})

    assert accepted.status_code == 200
    assert rejected.status_code == 401


async def test_dev_key_ignored_when_not_configured(async_client):
    response = await async_client.post(ENDPOINT, headers={"X-Dev-Key": ""})

    assert response.status_code == 401


@pytest.mark.parametrize("method", ["GET", "POST"])
async def test_production_requires_bearer_secret(production_client, cron_headers, method):
    missing = await production_client.request(method, ENDPOINT)
    wrong = await production_client.request(
        method, ENDPOINT, headers={"Authorization": "Bearer nope"}
    )
    right = await production_client.request(method, ENDPOINT, headers=cron_headers)

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert right.status_code == 200
    assert "test-cron-secret" not in wrong.text


async def test_production_dev_key_is_not_accepted(production_settings, database, agent):
    app = create_app(
        settings=production_settings.model_copy(update={"dev_test_key": "let-me-in"}),
        database=database,
        rate_limiter=RateLimiter(),
        agent=agent,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(ENDPOINT, headers={"X-Dev-Key": "let-me-in"})

    assert response.status_code == 401


async def test_missing_secret_rejects_everything(production_settings, database, agent):
    app = create_app(
        settings=production_settings.model_copy(update={"cron_secret": None}),
        database=database,
        rate_limiter=RateLimiter(),
        agent=agent,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(ENDPOINT, headers={"Authorization": "Bearer None"})

    assert response.status_code == 401


async def test_store_failure_returns_500_with_partial_result(
    async_client, app, cron_headers, monkeypatch
):
    store = app.state.job_store
    first = await store.create_job(JobTypes.MAINTENANCE_CLEANUP, {"dry_run": True})
    await store.create_job(JobTypes.MAINTENANCE_CLEANUP, {"dry_run": True})

    real_claim = store.claim_next_job
    calls = []

    async def claim_then_break():
        calls.append(1)
        if len(calls) > 1:
            raise OperationalError("SELECT", {}, Exception("database is gone"))
        return await real_claim()

    monkeypatch.setattr(store, "claim_next_job", claim_then_break)

    response = await async_client.post(ENDPOINT, headers=cron_headers)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Failed to process jobs"
    assert body["processed"] == 1
    assert any("OperationalError" in error for error in body["errors"])
    assert body["stats"]["completed"] == 1
    assert body["stats"]["pending"] == 1
    assert (await store.get_job(first.id)).status == JobStatus.COMPLETED.value


async def test_unexpected_failure_returns_bare_500(async_client, app, cron_headers, monkeypatch):
    async def broken_recovery():
        raise OperationalError("UPDATE", {}, Exception("database is gone"))

    monkeypatch.setattr(app.state.job_store, "recover_stale_jobs", broken_recovery)

    response = await async_client.post(ENDPOINT, headers=cron_headers)

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Failed to process jobs"}


async def test_manual_trigger_is_rate_limited(async_client, cron_headers):
    statuses = []
    for _ in range(61):
        response = await async_client.post(ENDPOINT, headers=cron_headers)
        statuses.append(response.status_code)

    assert statuses[:60] == [200] * 60
    assert statuses[60] == 429
    assert "Retry-After" in response.headers
