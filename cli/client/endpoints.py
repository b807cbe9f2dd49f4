"""API Endpoint Wrappers - Type-safe API calls"""

from typing import Any

from .base import APIClient, JobCoreError
from ..utils.config_manager import config

__all__ = ["JobCoreClient", "JobCoreError"]


class JobCoreClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_token = token or api_config.get("token")
        headers = {"Authorization": f"Bearer {final_token}"} if final_token else {}

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers=headers,
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

    # Cron triggers
    def run_orchestrator(self, name: str) -> tuple[int, dict[str, Any]]:
        """Trigger one orchestrator pass, returns (status code, run summary)"""
        return self.api.post_raw(f"/cron/{name}")

    # Jobs Endpoints
    def list_jobs(
        self,
        kind: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs with filters"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if kind:
            params["kind"] = kind
        if status:
            params["status"] = status
        return self.api.get("/jobs", params=params)

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self.api.get(f"/jobs/{job_id}")

    def get_deliveries(self, job_id: str) -> list[dict[str, Any]]:
        return self.api.get(f"/jobs/{job_id}/deliveries")

    def enqueue_sync(
        self,
        article_id: str,
        action: str,
        data: dict[str, Any] | None = None,
        event_id: str | None = None,
    ) -> dict[str, Any]:
        """Enqueue a content change for delivery to sync destinations"""
        body: dict[str, Any] = {"article_id": article_id, "action": action, "data": data or {}}
        if event_id:
            body["event_id"] = event_id
        return self.api.post("/jobs/sync", json=body)
