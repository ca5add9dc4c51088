"""Shared test fixtures for the docweaver test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, patch

import pytest

from docweaver.cache import ContentCache
from docweaver.config import GenerationSettings, PathSettings, ServerSettings, Settings
from docweaver.models import ExecutionResult, TableOfContents

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

Responder = Callable[..., Any]

SCENARIO_TOC: dict[str, Any] = {
    "sections": [
        {"id": "intro", "name": "Intro"},
        {"id": "auth", "name": "Auth", "parts": [{"id": "login", "name": "Login"}]},
    ]
}


def content_for(part_name: str) -> str:
    return f"<content for {part_name}>"


class StubExecutor:
    """In-memory ExecutorProtocol.

    Answers structured (schema) calls with ``toc`` and every other call with
    ``"<content for {part_name}>"``. Exceptions queued in ``failures`` are
    raised, in order, before any answer is given.
    """

    def __init__(
        self,
        toc: dict[str, Any] | None = None,
        responder: Responder | None = None,
        model_id: str = "stub-model",
    ) -> None:
        self.toc = toc if toc is not None else SCENARIO_TOC
        self.responder = responder
        self.model_id = model_id
        self.failures: list[Exception] = []
        self.calls: list[dict[str, Any]] = []

    @property
    def part_names(self) -> list[str]:
        return [call["data"].get("part_name") for call in self.calls]

    async def execute(
        self,
        interaction: str,
        data: dict[str, Any],
        *,
        environment: str | None = None,
        model: str | None = None,
        result_schema: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        self.calls.append(
            {
                "interaction": interaction,
                "data": data,
                "environment": environment,
                "model": model,
                "result_schema": result_schema,
            }
        )
        if self.failures:
            raise self.failures.pop(0)
        if self.responder is not None:
            result = self.responder(interaction, data, result_schema)
        elif result_schema is not None:
            result = self.toc
        else:
            result = content_for(data.get("part_name", ""))
        return ExecutionResult(result=result, model_id=self.model_id)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any local docweaver.yaml or environment."""
    return Settings(
        server=ServerSettings(url="https://exec.example.com", token="secret"),
        generation=GenerationSettings(environment="env-1", model="model-1"),
        paths=PathSettings(
            context_dir=str(tmp_path / "context"),
            content_dir=str(tmp_path / "content"),
        ),
    )


@pytest.fixture()
def cache(settings: Settings) -> ContentCache:
    return ContentCache("test", settings.paths.context_dir)


@pytest.fixture()
def executor() -> StubExecutor:
    return StubExecutor()


@pytest.fixture()
def scenario_toc() -> TableOfContents:
    return TableOfContents.model_validate(SCENARIO_TOC)


@pytest.fixture()
def no_sleep() -> Iterator[AsyncMock]:
    """Make retry backoff instantaneous; yields the mock to inspect requested delays."""
    with patch("docweaver.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture()
def make_executor() -> type[StubExecutor]:
    """Factory for executors with a custom outline or responder."""
    return StubExecutor
