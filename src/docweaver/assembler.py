"""Document assembly strategies.

The run mode picks one strategy:

- ``doc``: narrative documents. Each generated section is written as its own
  page as soon as it is Done, and the whole document is rendered from the
  cache at the end.
- ``openapi``: the generated path and type fragments are collected from the
  cache and merged into a single OpenAPI document.

Both strategies back up every generated unit as a timestamped JSON snapshot
before writing the assembled view. File I/O runs off the event loop.
"""

from __future__ import annotations

import asyncio
import json
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import structlog
import yaml

from docweaver.cache import content_key
from docweaver.errors import DocWeaverError, ErrorCode
from docweaver.generator import restore_section
from docweaver.models import check_unit_id
from docweaver.prompting import render_sections

if TYPE_CHECKING:
    from docweaver.models import Content, GeneratedSection, Section, TableOfContents
    from docweaver.protocols import AssemblerProtocol, CacheProtocol

log = structlog.get_logger()

AssemblyMode = Literal["doc", "openapi"]

OPENAPI_VERSION = "3.1.0"
OPENAPI_FILENAME = "openapi-spec.yaml"
DOCUMENT_FILENAME = "document.md"
SCHEMA_SECTION_IDS = frozenset({"components", "schemas", "types"})
BEARER_SCHEME = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}

_CODE_FENCE = re.compile(r"^\s*```[\w-]*\s*\n(.*?)\n\s*```\s*$", re.DOTALL)


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class _FileAssembler:
    """Shared output layout: ``<content_dir>/<prefix>/...``."""

    def __init__(self, content_dir: str | Path, prefix: str) -> None:
        self.root = Path(content_dir) / prefix

    async def write_toc(self, toc: TableOfContents) -> None:
        path = self.root / "toc.json"
        text = json.dumps(toc.model_dump(mode="json", exclude_none=True), indent=4)
        await asyncio.to_thread(_write_text, path, text)
        log.info("toc_written", path=str(path))

    def unit_id(self, section: GeneratedSection) -> str:
        """Return the section id once it is known to name a single folder under ``root``."""
        try:
            return check_unit_id(section.id)
        except ValueError as exc:
            raise DocWeaverError(
                code=ErrorCode.GENERATION_FAILED,
                message=f"Refusing to write section {section.id!r} outside {self.root}: {exc}",
                suggestion='Delete the cached "toc" entry and rerun to regenerate the outline.',
            ) from exc

    async def backup(self, section: GeneratedSection) -> Path:
        path = self.root / "backup" / f"{_timestamp()}-{self.unit_id(section)}.json"
        text = json.dumps(section.model_dump(mode="json"), indent=4, ensure_ascii=False)
        await asyncio.to_thread(_write_text, path, text)
        return path


class NarrativeAssembler(_FileAssembler):
    """Writes one page per section plus the full rendered document."""

    def __init__(
        self,
        content_dir: str | Path,
        prefix: str,
        page_extension: Literal["md", "mdx"] = "mdx",
    ) -> None:
        super().__init__(content_dir, prefix)
        self.page_extension = page_extension

    def render(self, sections: list[GeneratedSection]) -> str:
        return render_sections(sections)

    def page_header(self, section: GeneratedSection, model_id: str | None) -> str:
        metadata = {
            "title": section.name,
            "model": model_id or "",
            "generated_at": datetime.now(UTC).isoformat(),
        }
        if self.page_extension == "md":
            return f"---\n{yaml.safe_dump(metadata, sort_keys=False, allow_unicode=True)}---\n\n"
        fields = "".join(f"    {key}: {json.dumps(value)},\n" for key, value in metadata.items())
        return f"export const metadata = {{\n{fields}}}\n\n"

    async def write_section(self, section: GeneratedSection, model_id: str | None) -> None:
        await self.backup(section)
        path = self.root / self.unit_id(section) / f"page.{self.page_extension}"
        text = self.page_header(section, model_id) + self.render([section])
        await asyncio.to_thread(_write_text, path, text)
        log.info("section_written", section=section.id, path=str(path))

    async def finalize(self, cache: CacheProtocol, toc: TableOfContents) -> Path:
        sections: list[GeneratedSection] = []
        for section in toc.sections:
            restored = await restore_section(cache, section)
            if restored is None:
                log.warning("section_missing_from_cache", section=section.id)
                continue
            sections.append(restored)

        path = self.root / DOCUMENT_FILENAME
        await asyncio.to_thread(_write_text, path, self.render(sections))
        log.info("document_written", path=str(path), sections=len(sections))
        return path


def parse_fragment(content: Content, unit: str) -> dict[str, Any] | None:
    """Turn a generated fragment into a mapping; YAML text is parsed, fences stripped."""
    if isinstance(content, dict):
        return content
    if not isinstance(content, str):
        log.warning("openapi_fragment_skipped", unit=unit, reason="not_a_mapping")
        return None

    match = _CODE_FENCE.match(content)
    text = match.group(1) if match else content
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        log.warning("openapi_fragment_skipped", unit=unit, reason="invalid_yaml", error=str(exc))
        return None
    if not isinstance(parsed, dict):
        log.warning("openapi_fragment_skipped", unit=unit, reason="not_a_mapping")
        return None
    return parsed


class OpenApiAssembler(_FileAssembler):
    """Merges generated path and type fragments into one OpenAPI document."""

    def __init__(
        self,
        content_dir: str | Path,
        prefix: str,
        *,
        title: str,
        version: str,
        server_url: str | None = None,
    ) -> None:
        super().__init__(content_dir, prefix)
        self.title = title
        self.version = version
        self.server_url = server_url

    def new_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "openapi": OPENAPI_VERSION,
            "info": {"title": self.title, "version": self.version},
        }
        if self.server_url:
            document["servers"] = [{"url": self.server_url}]
        document["security"] = [{"bearerAuth": []}]
        document["paths"] = {}
        document["components"] = {
            "schemas": {},
            "securitySchemes": {"bearerAuth": dict(BEARER_SCHEME)},
        }
        return document

    async def write_section(self, section: GeneratedSection, model_id: str | None) -> None:
        path = await self.backup(section)
        log.info("section_backed_up", section=section.id, path=str(path), model=model_id)

    async def build(self, cache: CacheProtocol, toc: TableOfContents) -> dict[str, Any]:
        document = self.new_document()
        for section in toc.sections:
            target = self._target(document, section)
            key = content_key(section.id)
            if await cache.has(key):
                fragment = parse_fragment(await cache.get(key), section.id)
                if fragment is not None:
                    self._merge(document, target, fragment)
            for part in section.parts:
                key = content_key(section.id, part.id)
                if not await cache.has(key):
                    log.warning("openapi_fragment_missing", section=section.id, part=part.id)
                    continue
                fragment = parse_fragment(await cache.get(key), f"{section.id}/{part.id}")
                if fragment is None:
                    continue
                if set(fragment) != {part.name}:
                    fragment = {part.name: fragment}
                target.update(fragment)
        return document

    async def finalize(self, cache: CacheProtocol, toc: TableOfContents) -> Path:
        document = await self.build(cache, toc)
        path = self.root / OPENAPI_FILENAME
        text = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
        await asyncio.to_thread(_write_text, path, text)
        log.info(
            "openapi_written",
            path=str(path),
            paths=len(document["paths"]),
            schemas=len(document["components"]["schemas"]),
        )
        return path

    @staticmethod
    def _target(document: dict[str, Any], section: Section) -> dict[str, Any]:
        if section.id in SCHEMA_SECTION_IDS:
            return document["components"]["schemas"]
        return document["paths"]

    @staticmethod
    def _merge(document: dict[str, Any], target: dict[str, Any], fragment: dict[str, Any]) -> None:
        """Merge a section-level fragment, which may be a partial OpenAPI document."""
        if "paths" in fragment or "components" in fragment:
            document["paths"].update(fragment.get("paths") or {})
            components = fragment.get("components") or {}
            document["components"]["schemas"].update(components.get("schemas") or {})
            return
        target.update(fragment)


def build_assembler(
    mode: AssemblyMode,
    *,
    content_dir: str | Path,
    prefix: str,
    page_extension: Literal["md", "mdx"] = "mdx",
    title: str = "API",
    version: str = "1.0.0",
    server_url: str | None = None,
) -> AssemblerProtocol:
    if mode == "openapi":
        return OpenApiAssembler(
            content_dir, prefix, title=title, version=version, server_url=server_url
        )
    return NarrativeAssembler(content_dir, prefix, page_extension=page_extension)
