"""API Endpoint Wrappers - Type-safe API calls"""

from typing import Any

from ..utils.config_manager import config
from .base import APIClient, PortalJobsError

__all__ = ["PortalJobsClient", "PortalJobsError"]


class PortalJobsClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers") or {}

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers=final_headers,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Cron trigger
    def trigger_jobs(
        self, secret: str | None = None, dev_key: str | None = None
    ) -> dict[str, Any]:
        """Run one processing tick through the manual trigger"""
        headers = {}
        if secret:
            headers["Authorization"] = f"Bearer {secret}"
        if dev_key:
            headers["X-Dev-Key"] = dev_key
        return self.api.post("/cron/process-jobs", headers=headers)

    # Jobs Endpoints
    def enqueue_job(
        self,
        job_type: str,
        payload: dict[str, Any],
        priority: int | None = None,
        max_attempts: int | None = None,
    ) -> dict[str, Any]:
        """Enqueue a job"""
        body: dict[str, Any] = {"type": job_type, "payload": payload}
        if priority is not None:
            body["priority"] = priority
        if max_attempts is not None:
            body["max_attempts"] = max_attempts
        return self.api.post("/jobs", json=body)

    def list_jobs(
        self,
        status: str | None = None,
        type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs with filters"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if type:
            params["type"] = type
        return self.api.get("/jobs", params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        """Get a job by ID"""
        return self.api.get(f"/jobs/{job_id}")

    def get_stats(self) -> dict[str, Any]:
        """Job counts per status"""
        return self.api.get("/jobs/stats")

    def cancel_job(self, job_id: str) -> dict[str, Any]:
        """Cancel a pending job"""
        return self.api.post(f"/jobs/{job_id}/cancel")
