"""Source input preparation.

Each input is tagged by a key (``serverApi``, ``examples``, ...) and given as
one or more glob patterns. The matching files are concatenated into one
banner-delimited text and stored in the cache under that key, once per
context.
"""

from __future__ import annotations

import asyncio
import glob
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from docweaver.errors import DocWeaverError, ErrorCode
from docweaver.prompting import get_files_content

if TYPE_CHECKING:
    from docweaver.protocols import CacheProtocol

log = structlog.get_logger()


def parse_input_spec(values: list[str]) -> dict[str, list[str]]:
    """Group ``KEY=GLOB`` command-line values by key, keeping pattern order."""
    grouped: dict[str, list[str]] = {}
    for value in values:
        key, sep, pattern = value.partition("=")
        if not sep or not key or not pattern:
            raise DocWeaverError(
                code=ErrorCode.INVALID_CONFIG,
                message=f"Invalid input {value!r}",
                suggestion="Use --input KEY=GLOB, e.g. --input serverApi='src/api/**/*.ts'.",
            )
        grouped.setdefault(key, []).append(pattern)
    return grouped


def expand_globs(patterns: list[str]) -> list[str]:
    """Return the sorted, de-duplicated files matching any of ``patterns``."""
    files: set[str] = set()
    for pattern in patterns:
        files.update(path for path in glob.glob(pattern, recursive=True) if Path(path).is_file())
    return sorted(files)


async def prepare_context(
    cache: CacheProtocol,
    inputs: dict[str, list[str]],
) -> dict[str, Any]:
    """Load every input into the cache and return the inputs keyed by name.

    Keys already cached are reused as-is so a resumed run sees the same
    sources the interrupted one did.
    """
    for key, patterns in inputs.items():
        if await cache.has(key):
            log.info("input_cached", key=key)
            continue

        files = expand_globs(patterns)
        if not files:
            raise DocWeaverError(
                code=ErrorCode.INPUT_NOT_FOUND,
                message=f"No files match input {key!r}: {', '.join(patterns)}",
                suggestion="Check the glob patterns (quote them so the shell does not expand them).",
            )
        content = await asyncio.to_thread(get_files_content, files)
        await cache.save({key: content})
        log.info("input_loaded", key=key, files=len(files), characters=len(content))

    return {key: await cache.get(key) for key in inputs}
