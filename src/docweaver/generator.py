"""Section/part generation walk.

Walks the outline depth-first in declaration order. Each section is one
remote call, followed by one call per part. A section is Done once its
``section-{id}`` marker is in the cache; Done sections are skipped on every
later pass over the same context, which is what makes an interrupted run
resumable.

The walk is strictly sequential: the ``previously_generated`` text a section
sees is exactly the content of the sections before it, in TOC order.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import structlog

from docweaver.cache import content_key, section_key
from docweaver.errors import DocWeaverError, ErrorCode
from docweaver.models import GeneratedPart, GeneratedSection
from docweaver.prompting import (
    SUBSECTION_INSTRUCTION,
    build_prompt_context,
    part_instruction,
    render_sections,
    section_instruction,
)
from docweaver.retry import call_with_retry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from docweaver.config import GenerationSettings
    from docweaver.models import ExecutionResult, Part, Section, TableOfContents
    from docweaver.protocols import CacheProtocol, ExecutorProtocol

    SectionSink = Callable[[GeneratedSection, str | None], Awaitable[None]]

log = structlog.get_logger()


def part_label(section: Section, part: Part) -> str:
    return f"{section.name} > {part.name}"


async def restore_section(cache: CacheProtocol, section: Section) -> GeneratedSection | None:
    """Rebuild a generated section from its cached bodies, or None if absent."""
    if not await cache.has(content_key(section.id)):
        return None
    parts: list[GeneratedPart] = []
    for part in section.parts:
        key = content_key(section.id, part.id)
        if await cache.has(key):
            parts.append(GeneratedPart(id=part.id, name=part.name, content=await cache.get(key)))
    return GeneratedSection(
        id=section.id,
        name=section.name,
        content=await cache.get(content_key(section.id)),
        parts=parts,
    )


class SectionGenerator:
    """Generates every pending section and part of an outline."""

    def __init__(
        self,
        executor: ExecutorProtocol,
        cache: CacheProtocol,
        settings: GenerationSettings,
        *,
        interaction: str,
        on_section: SectionSink | None = None,
        part_directive: str = SUBSECTION_INSTRUCTION,
    ) -> None:
        self._executor = executor
        self._cache = cache
        self._settings = settings
        self._interaction = interaction
        self._on_section = on_section
        self._part_directive = part_directive
        self.model_id: str | None = settings.model

    async def generate(
        self,
        toc: TableOfContents,
        inputs: dict[str, Any],
        instruction: str | None = None,
    ) -> list[GeneratedSection]:
        """Generate all pending sections; return every section in TOC order.

        Raises DocWeaverError on the first unit that fails for good. Units
        finished before the failure stay Done in the cache.
        """
        total = len(toc.sections)
        done: list[GeneratedSection] = []
        memo: list[str] = []

        log.info("generation_started", sections=total, interaction=self._interaction)
        for index, section in enumerate(toc.sections, start=1):
            if await self._cache.has(section_key(section.id)):
                log.info("section_skipped", section=section.id, position=index, total=total)
                restored = await restore_section(self._cache, section)
                if restored is not None:
                    done.append(restored)
                memo.append(section.name)
                memo.extend(part_label(section, part) for part in section.parts)
                continue

            log.info("section_generating", section=section.id, position=index, total=total)
            start = time.perf_counter()
            generated = await self._generate_section(toc, section, inputs, instruction, done, memo)

            await self._cache.save(
                {
                    content_key(section.id): generated.content,
                    section_key(section.id): section.model_dump(mode="json", exclude_none=True),
                }
            )
            if self._on_section is not None:
                await self._on_section(generated, self.model_id)

            done.append(generated)
            log.info(
                "section_generated",
                section=section.id,
                parts=len(generated.parts),
                duration_seconds=round(time.perf_counter() - start, 2),
            )

        return done

    async def _generate_section(
        self,
        toc: TableOfContents,
        section: Section,
        inputs: dict[str, Any],
        instruction: str | None,
        done: list[GeneratedSection],
        memo: list[str],
    ) -> GeneratedSection:
        previously_generated = render_sections(done)

        data = build_prompt_context(
            inputs,
            toc=toc,
            previously_generated=previously_generated,
            already_generated=memo,
            part_name=section.name,
            instruction=section_instruction(instruction, section),
        )
        response = await self._call(section.id, data)
        memo.append(section.name)

        generated = GeneratedSection(id=section.id, name=section.name, content=response.result)

        for position, part in enumerate(section.parts, start=1):
            label = part_label(section, part)
            key = content_key(section.id, part.id)
            if await self._cache.has(key):
                log.info("part_reused", section=section.id, part=part.id)
                content = await self._cache.get(key)
            else:
                log.info(
                    "part_generating",
                    section=section.id,
                    part=part.id,
                    position=position,
                    total=len(section.parts),
                )
                data = build_prompt_context(
                    inputs,
                    toc=toc,
                    previously_generated=previously_generated,
                    already_generated=memo,
                    part_name=label,
                    instruction=part_instruction(
                        instruction, section, part, self._part_directive
                    ),
                )
                content = (await self._call(f"{section.id}/{part.id}", data)).result
                await self._cache.save({key: content})
            memo.append(label)
            generated.parts.append(GeneratedPart(id=part.id, name=part.name, content=content))

        return generated

    async def _call(self, label: str, data: dict[str, Any]) -> ExecutionResult:
        async def attempt() -> ExecutionResult:
            return await self._executor.execute(
                self._interaction,
                data,
                environment=self._settings.environment,
                model=self._settings.model,
            )

        response = await call_with_retry(attempt, label=label, settings=self._settings)
        if response.result is None:
            log.error("generation_empty_result", unit=label)
            raise DocWeaverError(
                code=ErrorCode.GENERATION_FAILED,
                message=f"Failed to generate part: {label}: remote service returned no result",
                suggestion="Rerun to retry this unit; finished units are kept in the cache.",
            )
        if response.model_id:
            self.model_id = response.model_id
        return response
