"""HTTP client for the remote model-execution service.

All remote generation calls go through a single ExecutionClient instance
shared by the whole run. The client receives an httpx.AsyncClient via
constructor injection; the CLI owns the client lifecycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from docweaver import __version__
from docweaver.errors import RemoteExecutionError
from docweaver.models import ExecutionResult

if TYPE_CHECKING:
    from docweaver.config import ServerSettings

log = structlog.get_logger()


def build_http_client(settings: ServerSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once per run."""
    headers = {"User-Agent": f"docweaver/{__version__}"}
    if settings.token:
        headers["Authorization"] = f"Bearer {settings.token}"
    return httpx.AsyncClient(
        base_url=settings.url or "",
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers=headers,
    )


def _decode_payload(response: httpx.Response) -> dict[str, Any] | None:
    try:
        payload = response.json()
    except ValueError:
        return {"error": response.text} if response.text else None
    return payload if isinstance(payload, dict) else {"error": payload}


class ExecutionClient:
    """Executes named interactions on the remote service. Implements ExecutorProtocol."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def execute(
        self,
        interaction: str,
        data: dict[str, Any],
        *,
        environment: str | None = None,
        model: str | None = None,
        result_schema: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """Run one interaction and return its result.

        Raises RemoteExecutionError on network errors and non-2xx responses.
        """
        body: dict[str, Any] = {
            "data": data,
            "config": {"environment": environment, "model": model},
        }
        if result_schema is not None:
            body["result_schema"] = result_schema

        log.info(
            "interaction_executing",
            interaction=interaction,
            model=model,
            environment=environment,
            structured=result_schema is not None,
        )

        try:
            response = await self._client.post(
                f"/api/v1/interactions/{interaction}/execute", json=body
            )
        except httpx.HTTPError as exc:
            raise RemoteExecutionError(
                f"Network error executing {interaction}: {exc}"
            ) from exc

        if not response.is_success:
            raise RemoteExecutionError(
                f"HTTP {response.status_code} executing {interaction}",
                payload=_decode_payload(response),
                status_code=response.status_code,
            )

        payload = response.json()
        result = ExecutionResult(
            result=payload.get("result"),
            model_id=payload.get("modelId") or payload.get("model_id"),
        )
        log.info("interaction_complete", interaction=interaction, model_id=result.model_id)
        return result
