"""Bulk per-file summarization.

Files have no ordering dependency on each other, so they are summarised in
concurrent batches: every call in a batch is awaited together before the
next batch starts. Each summary is cached under the file path as soon as it
arrives; files already cached are never sent again.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from docweaver.errors import RemoteExecutionError

if TYPE_CHECKING:
    from docweaver.protocols import CacheProtocol, ExecutorProtocol

log = structlog.get_logger()

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 50


def chunked(items: list[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("size must be >= 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


async def _summarize_file(
    executor: ExecutorProtocol,
    cache: CacheProtocol,
    path: str,
    *,
    interaction: str,
    environment: str | None,
    model: str | None,
) -> bool:
    code = await asyncio.to_thread(Path(path).read_text, encoding="utf-8", errors="replace")
    try:
        response = await executor.execute(
            interaction, {"code": code}, environment=environment, model=model
        )
    except RemoteExecutionError as exc:
        # One bad file must not sink the batch; it stays uncached and is retried next run
        log.warning("summary_failed_skipping", file=path, message=exc.message, detail=exc.detail)
        return False
    await cache.save({path: response.result})
    log.info("summary_saved", file=path)
    return True


async def summarize_files(
    executor: ExecutorProtocol,
    cache: CacheProtocol,
    files_by_key: dict[str, list[str]],
    *,
    interaction: str,
    environment: str | None = None,
    model: str | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, Any]:
    """Summarise every uncached file and return the resulting cache contents."""
    for key, files in files_by_key.items():
        pending = [path for path in files if not await cache.has(path)]
        log.info("summaries_processing", key=key, files=len(files), pending=len(pending))

        batches = chunked(pending, batch_size)
        for number, batch in enumerate(batches, start=1):
            results = await asyncio.gather(
                *(
                    _summarize_file(
                        executor,
                        cache,
                        path,
                        interaction=interaction,
                        environment=environment,
                        model=model,
                    )
                    for path in batch
                )
            )
            log.info(
                "summary_batch_complete",
                key=key,
                batch=number,
                batches=len(batches),
                succeeded=sum(results),
                failed=len(results) - sum(results),
            )

    return dict(await cache.load())
