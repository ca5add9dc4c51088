"""Gzip-compressed JSON content cache scoped to one named context.

One file per context at ``<context_dir>/<name>.json.gz`` holds every
intermediate and final generation artifact: source inputs, the table of
contents, Done markers (``section-{id}``) and generated bodies
(``g-{sectionId}`` / ``g-{sectionId}/{partId}``). Unit ids never
contain ``/``, so a part key cannot collide with a section key.

Every save rewrites the whole file, so save cost grows with the total cache
size, not with the number of keys written. Unlike a best-effort lookup cache,
this store is the run's source of truth for resumption: I/O failures and
corrupt payloads propagate to the caller instead of degrading to a miss.
"""

from __future__ import annotations

import asyncio
import gzip
import json
import os
import sys
import zlib
from contextlib import suppress
from pathlib import Path
from typing import Any

import structlog

from docweaver.errors import DocWeaverError, ErrorCode

log = structlog.get_logger()

CACHE_SUFFIX = ".json.gz"
SECTION_KEY_PREFIX = "section-"
CONTENT_KEY_PREFIX = "g-"
PART_KEY_SEPARATOR = "/"


def section_key(section_id: str) -> str:
    """Key of the Done marker for a section."""
    return f"{SECTION_KEY_PREFIX}{section_id}"


def content_key(section_id: str, part_id: str | None = None) -> str:
    """Key of the generated body of a section, or of one of its parts."""
    if part_id is None:
        return f"{CONTENT_KEY_PREFIX}{section_id}"
    return f"{CONTENT_KEY_PREFIX}{section_id}{PART_KEY_SEPARATOR}{part_id}"


def cache_path(context_dir: str | Path, name: str) -> Path:
    return Path(context_dir) / f"{name}{CACHE_SUFFIX}"


class ContentCache:
    """File-backed key/value store with an in-process mirror.

    Implements CacheProtocol. One instance per named context; pass it
    explicitly to every component that needs it.
    """

    def __init__(self, name: str, context_dir: str | Path) -> None:
        self.name = name
        self.path = cache_path(context_dir, name)
        self._mirror: dict[str, Any] | None = None
        self._write_lock = asyncio.Lock()

    async def load(self) -> dict[str, Any]:
        """Return the full mapping, reading durable storage on first access.

        A missing cache file is an empty context, not an error.
        """
        if self._mirror is None:
            self._mirror = await asyncio.to_thread(self._read)
            log.debug("cache_loaded", context=self.name, keys=len(self._mirror))
        return self._mirror

    async def get(self, key: str, default: Any = None) -> Any:
        data = await self.load()
        return data.get(key, default)

    async def has(self, key: str) -> bool:
        """Explicit presence test. Falsy values ("" or 0) count as present."""
        data = await self.load()
        return key in data

    async def save(self, partial: dict[str, Any]) -> None:
        """Merge ``partial`` into the stored mapping and persist the result.

        New keys overwrite existing ones; all other keys are preserved.
        Concurrent callers are serialised so each merge sees the previous one.
        """
        async with self._write_lock:
            merged = {**(await self.load()), **partial}
            await asyncio.to_thread(self._write, merged)
            self._mirror = merged
        log.debug("cache_saved", context=self.name, keys=sorted(partial), total=len(merged))

    def _read(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            with gzip.open(self.path, "rt", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (gzip.BadGzipFile, EOFError, zlib.error, UnicodeDecodeError, ValueError) as exc:
            raise DocWeaverError(
                code=ErrorCode.CACHE_CORRUPT,
                message=f"Cannot decode context cache {self.path}: {exc}",
                suggestion="Delete the cache file or use another --context to start over.",
            ) from exc
        if not isinstance(data, dict):
            raise DocWeaverError(
                code=ErrorCode.CACHE_CORRUPT,
                message=f"Context cache {self.path} does not hold a JSON object",
                suggestion="Delete the cache file or use another --context to start over.",
            )
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = gzip.compress(json.dumps(data, ensure_ascii=False).encode("utf-8"))
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            _write_bytes_fsync(tmp_path, payload)
            os.replace(tmp_path, self.path)
            _fsync_directory(self.path.parent)
        finally:
            with suppress(OSError):
                tmp_path.unlink(missing_ok=True)


def _write_bytes_fsync(path: Path, data: bytes) -> None:
    with path.open("wb") as file_obj:
        file_obj.write(data)
        file_obj.flush()
        os.fsync(file_obj.fileno())


def _fsync_directory(path: Path) -> None:
    if sys.platform == "win32":
        return  # Windows does not support fsync on directory handles
    directory_fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(directory_fd)
    finally:
        os.close(directory_fd)
