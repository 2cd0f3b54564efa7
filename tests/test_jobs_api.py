import uuid

import pytest

from portal.v1.infra.jobs.handlers import JobTypes
from portal.v1.infra.jobs.models import JobPriority, JobStatus


def _development_request(**overrides) -> dict:
    body = {
        "type": JobTypes.PROJECT_DEVELOPMENT,
        "payload": {
            "project_id": str(uuid.uuid4()),
            "user_id": "user-1",
            "requirements": {"pages": ["home", "pricing"]},
        },
    }
    body.update(overrides)
    return body


async def test_enqueue_returns_pending_job(async_client, app, auth_headers):
    response = await async_client.post(
        "/v1/jobs", json=_development_request(), headers=auth_headers
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "pending"

    job = await app.state.job_store.get_job(uuid.UUID(data["job_id"]))
    assert job.status == JobStatus.PENDING.value
    assert job.priority == JobPriority.NORMAL
    assert job.created_by == "user-1"
    # Stored in its validated form, defaults included
    assert job.payload["options"]["create_github_repo"] is True


async def test_enqueue_sets_rate_limit_headers(async_client, auth_headers):
    response = await async_client.post(
        "/v1/jobs", json=_development_request(), headers=auth_headers
    )

    assert response.headers["X-RateLimit-Remaining"] == "59"
    assert "X-RateLimit-Reset" in response.headers


async def test_enqueue_unknown_type_is_rejected(async_client, auth_headers):
    response = await async_client.post(
        "/v1/jobs", json={"type": "teleport", "payload": {}}, headers=auth_headers
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["message"] == "No handler registered for job type: teleport"
    assert error["details"] == {"type": "teleport"}


async def test_enqueue_invalid_payload_is_rejected(async_client, auth_headers):
    response = await async_client.post(
        "/v1/jobs",
        json=_development_request(payload={"project_id": "not-a-uuid"}),
        headers=auth_headers,
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["message"] == "Invalid payload for job type: project_development"
    fields = {tuple(e["loc"]) for e in error["details"]["errors"]}
    assert ("project_id",) in fields
    assert ("user_id",) in fields


async def test_enqueue_requires_identity(async_client):
    response = await async_client.post("/v1/jobs", json=_development_request())

    assert response.status_code == 401


@pytest.mark.parametrize("max_attempts", [0, 21])
async def test_enqueue_rejects_out_of_range_attempts(
    async_client, auth_headers, max_attempts
):
    response = await async_client.post(
        "/v1/jobs",
        json=_development_request(max_attempts=max_attempts),
        headers=auth_headers,
    )

    assert response.status_code == 422


async def test_get_job_status(async_client, auth_headers):
    created = await async_client.post(
        "/v1/jobs",
        json=_development_request(priority=JobPriority.HIGH, max_attempts=4),
        headers=auth_headers,
    )
    job_id = created.json()["data"]["job_id"]

    response = await async_client.get(f"/v1/jobs/{job_id}", headers=auth_headers)

    assert response.status_code == 200
    job = response.json()["data"]
    assert job["id"] == job_id
    assert job["type"] == JobTypes.PROJECT_DEVELOPMENT
    assert job["status"] == "pending"
    assert job["priority"] == JobPriority.HIGH
    assert job["attempts"] == 0
    assert job["max_attempts"] == 4
    assert job["error_message"] is None
    assert job["started_at"] is None
    assert job["completed_at"] is None


async def test_get_missing_job(async_client, auth_headers):
    response = await async_client.get(f"/v1/jobs/{uuid.uuid4()}", headers=auth_headers)

    assert response.status_code == 404


async def test_list_jobs_with_filters(async_client, app, auth_headers):
    store = app.state.job_store
    await store.create_job(JobTypes.MAINTENANCE_CLEANUP, {})
    cancelled = await store.create_job(JobTypes.MAINTENANCE_CLEANUP, {"dry_run": True})
    await store.cancel_job(cancelled.id)

    everything = await async_client.get("/v1/jobs", headers=auth_headers)
    only_cancelled = await async_client.get(
        "/v1/jobs", params={"status": "cancelled"}, headers=auth_headers
    )

    assert everything.json()["data"]["total"] == 2
    data = only_cancelled.json()["data"]
    assert data["total"] == 1
    assert data["jobs"][0]["id"] == str(cancelled.id)
    assert data["limit"] == 50
    assert data["offset"] == 0


async def test_job_stats(async_client, app, auth_headers):
    await app.state.job_store.create_job(JobTypes.MAINTENANCE_CLEANUP, {})

    response = await async_client.get("/v1/jobs/stats", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"]["pending"] == 1


async def test_cancel_pending_job(async_client, app, auth_headers):
    job = await app.state.job_store.create_job(JobTypes.MAINTENANCE_CLEANUP, {})

    response = await async_client.post(f"/v1/jobs/{job.id}/cancel", headers=auth_headers)
    again = await async_client.post(f"/v1/jobs/{job.id}/cancel", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"success": True, "job_id": str(job.id)}
    assert again.status_code == 404
    assert (await app.state.job_store.get_job(job.id)).status == "cancelled"


async def test_enqueued_job_runs_on_next_trigger(
    async_client, auth_headers, cron_headers, agent
):
    created = await async_client.post(
        "/v1/jobs", json=_development_request(), headers=auth_headers
    )
    job_id = created.json()["data"]["job_id"]

    trigger = await async_client.get("/v1/cron/process-jobs", headers=cron_headers)
    assert trigger.json()["processed"] == 1

    job = (await async_client.get(f"/v1/jobs/{job_id}", headers=auth_headers)).json()["data"]
    assert job["status"] == "completed"
    assert job["attempts"] == 1
    assert job["result"]["success"] is True
    assert job["started_at"] is not None
    assert job["completed_at"] is not None
    assert len(agent.calls) == 1


async def test_start_project_development(async_client, app, auth_headers):
    project_id = uuid.uuid4()

    response = await async_client.post(
        f"/v1/projects/{project_id}/develop",
        json={"requirements": {"style": "minimal"}},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    job_id = uuid.UUID(body["data"]["job_id"])
    assert response.headers["X-RateLimit-Remaining"] == "9"

    job = await app.state.job_store.get_job(job_id)
    assert job.type == JobTypes.PROJECT_DEVELOPMENT
    assert job.priority == JobPriority.HIGH
    assert job.max_attempts == 3
    assert job.payload["project_id"] == str(project_id)
    assert job.payload["user_id"] == "user-1"
    assert job.payload["requirements"] == {"style": "minimal"}


async def test_project_development_uses_ai_bucket(async_client, auth_headers):
    project_id = uuid.uuid4()
    statuses = [
        (
            await async_client.post(
                f"/v1/projects/{project_id}/develop", headers=auth_headers
            )
        ).status_code
        for _ in range(11)
    ]

    assert statuses == [200] * 10 + [429]


@pytest.mark.parametrize("priority", [1001, -1001, 2**31])
async def test_enqueue_rejects_out_of_range_priority(async_client, auth_headers, priority):
    response = await async_client.post(
        "/v1/jobs",
        json=_development_request(priority=priority),
        headers=auth_headers,
    )

    assert response.status_code == 422


async def test_job_metadata_is_returned(async_client, auth_headers):
    created = await async_client.post(
        "/v1/jobs",
        json=_development_request(metadata={"source": "dashboard"}),
        headers=auth_headers,
    )
    job_id = created.json()["data"]["job_id"]

    response = await async_client.get(f"/v1/jobs/{job_id}", headers=auth_headers)

    job = response.json()["data"]
    assert job["metadata"] == {"source": "dashboard"}
    assert job["error_stack"] is None
