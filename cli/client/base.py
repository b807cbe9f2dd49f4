"""Base HTTP Client for the Job Core API"""

from typing import Any

import httpx
from rich.console import Console
from rich.panel import Panel

console = Console()


class JobCoreError(Exception):
    """Base exception for Job Core API errors"""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _error_message(data: Any, fallback: str) -> str:
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message", fallback)
    if isinstance(error, str):
        return error
    return fallback


class APIClient:
    """HTTP client for the Job Core API"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: int = 30,
        headers: dict[str, str] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.default_headers = headers or {}
        self.client = httpx.Client(
            base_url=self.base_url, timeout=timeout, headers=self.default_headers
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Handle API response and extract data"""
        try:
            data = response.json()
        except ValueError:
            raise JobCoreError(
                f"Invalid JSON response: {response.status_code}",
                response.status_code,
                response.text,
            ) from None

        if response.status_code >= 400:
            error_msg = _error_message(data, "Unknown error")
            console.print(Panel(f"[red]{error_msg}[/red]", title="API Error"))
            raise JobCoreError(
                f"API Error {response.status_code}: {error_msg}",
                response.status_code,
                data,
            )

        # Handle envelope format (with "ok" field)
        if isinstance(data, dict) and "ok" in data:
            if not data.get("ok", False):
                error_msg = _error_message(data, "Request failed")
                raise JobCoreError(error_msg, response.status_code, data)
            return data.get("data", {})

        # Handle direct response format (no envelope)
        return data

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self.default_headers, **(kwargs.pop("headers", None) or {})}
        try:
            return self.client.request(method, f"/v1{path}", headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise JobCoreError(f"Connection failed: {e}") from None

    def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make GET request"""
        return self._handle_response(self._send("GET", path, params=params, headers=headers))

    def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make POST request"""
        return self._handle_response(self._send("POST", path, json=json, headers=headers))

    def post_raw(self, path: str, headers: dict[str, str] | None = None) -> tuple[int, Any]:
        """POST and return status code and decoded body without raising on 5xx"""
        response = self._send("POST", path, headers=headers)
        if response.status_code < 500:
            return response.status_code, self._handle_response(response)
        try:
            return response.status_code, response.json()
        except ValueError:
            return response.status_code, {"error": response.text}
