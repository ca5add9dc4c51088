"""Bounded retry for transient remote failures.

Schedule after the n-th failed attempt (1-based): a fixed wait for the first
``fixed_wait_attempts`` failures, then ``backoff_base ** n`` seconds. With the
defaults that is 30s, 30s, 30s, 81s, and the fifth failure aborts.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

import structlog

from docweaver.errors import DocWeaverError, ErrorCode, RemoteExecutionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from docweaver.config import GenerationSettings

log = structlog.get_logger()

T = TypeVar("T")


def retry_delay(attempt: int, settings: GenerationSettings) -> float:
    """Seconds to wait after the ``attempt``-th failed call."""
    if attempt <= settings.fixed_wait_attempts:
        return settings.fixed_wait_seconds
    return settings.backoff_base**attempt


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    label: str,
    settings: GenerationSettings,
) -> T:
    """Await ``operation`` until it succeeds or the retry budget is spent.

    Only transient (5xx) RemoteExecutionErrors are retried. Any other remote
    failure, and the last transient one, is raised as a DocWeaverError.
    """
    for attempt in range(1, settings.max_attempts + 1):
        try:
            return await operation()
        except RemoteExecutionError as exc:
            log.error(
                "generation_call_failed",
                unit=label,
                attempt=attempt,
                message=exc.message,
                detail=exc.detail,
                transient=exc.is_transient,
            )
            if not exc.is_transient:
                raise DocWeaverError(
                    code=ErrorCode.GENERATION_FAILED,
                    message=f"Failed to generate part: {label}: {exc.message}",
                    suggestion="Check the interaction name, model and inputs, then rerun.",
                ) from exc
            if attempt == settings.max_attempts:
                raise DocWeaverError(
                    code=ErrorCode.RETRIES_EXHAUSTED,
                    message=(
                        f"Failed to generate part: {label}: "
                        f"gave up after {attempt} attempts: {exc.message}"
                    ),
                    suggestion="The service may be overloaded. Rerun later to resume.",
                    recoverable=True,
                ) from exc

            delay = retry_delay(attempt, settings)
            log.warning("generation_retrying", unit=label, attempt=attempt, delay_seconds=delay)
            await asyncio.sleep(delay)

    # Unreachable but satisfies the type checker
    raise DocWeaverError(
        code=ErrorCode.RETRIES_EXHAUSTED,
        message=f"Failed to generate part: {label}",
        suggestion="",
    )
