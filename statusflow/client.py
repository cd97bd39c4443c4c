"""
StatusFlow API Client.

HTTP client for the change-status endpoints, including polling of
long-running operations.

Example:
    >>> client = StatusFlowClient("http://localhost:8000")
    >>> body = client.request_change("user-1", "confirmedCompromised", duration=3600)
    >>> if "operation" in body:
    ...     client.wait_for_operation(body["operation"]["id"])
    >>> client.get_resource("user-1")["status"]
    'confirmedCompromised'
"""

from __future__ import annotations

import time
from typing import Any

import httpx

TERMINAL_STATES = frozenset({"succeeded", "failed"})


class OperationTimeout(TimeoutError):
    """An operation did not finish within the polling deadline."""

    def __init__(self, operation_id: str, last_state: str | None):
        super().__init__(f"Operation {operation_id} still '{last_state}' after polling deadline")
        self.operation_id = operation_id
        self.last_state = last_state


class StatusFlowClient:
    """
    StatusFlow API client.

    Attributes:
        base_url: Service address
        timeout: Per-request timeout in seconds

    Example:
        >>> with StatusFlowClient("http://localhost:8000") as client:
        ...     client.patch_status("user-1", "dismissed")
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def __enter__(self) -> "StatusFlowClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    # ========== Resources ==========

    def get_resource(self, resource_id: str) -> dict[str, Any]:
        """
        Fetch a resource.

        Raises:
            httpx.HTTPStatusError: API call failed
        """
        resp = self._client.get(self._url(f"/resources/{resource_id}"))
        resp.raise_for_status()
        return resp.json()

    def patch_status(
        self,
        resource_id: str,
        status: str,
        *,
        expected_status: str | None = None,
        status_detail: str | None = None,
    ) -> dict[str, Any]:
        """
        Change a resource's status.

        Returns:
            The updated resource (completed) or an operation reference
            (accepted, contains an ``operation`` key)
        """
        data: dict[str, Any] = {"status": status}
        if expected_status is not None:
            data["expectedStatus"] = expected_status
        if status_detail is not None:
            data["statusDetail"] = status_detail

        resp = self._client.patch(self._url(f"/resources/{resource_id}"), json=data)
        resp.raise_for_status()
        return resp.json()

    def request_change(
        self,
        resource_id: str,
        status: str,
        *,
        expected_status: str | None = None,
        status_detail: str | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        """Post a change request carrying kind-specific parameters."""
        data: dict[str, Any] = {"status": status, **params}
        if expected_status is not None:
            data["expectedStatus"] = expected_status
        if status_detail is not None:
            data["statusDetail"] = status_detail

        resp = self._client.post(self._url(f"/resources/{resource_id}/changeRequests"), json=data)
        resp.raise_for_status()
        return resp.json()

    def list_operations(self, resource_id: str, limit: int = 100) -> list[dict[str, Any]]:
        resp = self._client.get(
            self._url(f"/resources/{resource_id}/operations"),
            params={"limit": limit},
        )
        resp.raise_for_status()
        return resp.json()["value"]

    # ========== Operations ==========

    def get_operation(self, operation_id: str) -> dict[str, Any]:
        resp = self._client.get(self._url(f"/operations/{operation_id}"))
        resp.raise_for_status()
        return resp.json()

    def wait_for_operation(
        self,
        operation_id: str,
        *,
        timeout: float = 60.0,
        interval: float = 0.5,
    ) -> dict[str, Any]:
        """
        Poll an operation until it succeeds or fails.

        Returns:
            The terminal operation

        Raises:
            OperationTimeout: Still running when ``timeout`` elapsed
        """
        deadline = time.monotonic() + timeout
        state = None
        while True:
            operation = self.get_operation(operation_id)
            state = operation["state"]
            if state in TERMINAL_STATES:
                return operation
            if time.monotonic() >= deadline:
                raise OperationTimeout(operation_id, state)
            time.sleep(interval)
