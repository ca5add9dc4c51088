"""Run orchestration.

Every run prepares its inputs in the cache first, then drives one of:

- ``doc`` / ``openapi``: table of contents → section walk → assembly
- ``simple``: a single one-pass generation
- ``summarize``: batched per-file summaries

Each step reads and writes the same named-context cache, so rerunning the
same command after a failure picks up where the previous run stopped.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import structlog

from docweaver.assembler import build_assembler
from docweaver.errors import DocWeaverError, ErrorCode
from docweaver.generator import SectionGenerator
from docweaver.inputs import expand_globs, prepare_context
from docweaver.prompting import SUBSECTION_INSTRUCTION, content_text, join_instructions
from docweaver.retry import call_with_retry
from docweaver.summaries import summarize_files
from docweaver.toc import load_or_generate_toc

if TYPE_CHECKING:
    from docweaver.models import ExecutionResult
    from docweaver.state import RunState

log = structlog.get_logger()

RunMode = Literal["doc", "openapi", "simple", "summarize"]

DEFAULT_INTERACTIONS: dict[str, str] = {
    "doc": "GenerateDoc",
    "openapi": "GenerateOpenAPI",
    "simple": "GenerateDocument",
    "summarize": "GenerateCodeSummary",
}

SIMPLE_RESULT_KEY = "simple"

OPENAPI_TOC_INSTRUCTION = (
    "You are planning an OpenAPI specification. Create a section with id 'paths' "
    "holding one part per endpoint path, named exactly after the path (e.g. /users/{id}), "
    "and a section with id 'components' holding one part per schema type, named exactly "
    "after the type."
)

OPENAPI_PART_DIRECTIVE = (
    "You are writing the OpenAPI definition of {part} in the {section} section. "
    "Answer with YAML only: the path item (for a path) or the schema object "
    "(for a type), with no surrounding prose."
)


@dataclass
class RunOptions:
    mode: RunMode
    context: str
    inputs: dict[str, list[str]] = field(default_factory=dict)
    instruction: str | None = None
    interaction: str | None = None
    prefix: str | None = None
    output: str | None = None
    title: str = "API"
    api_version: str = "1.0.0"
    page_extension: Literal["md", "mdx"] = "mdx"

    @property
    def interaction_name(self) -> str:
        return self.interaction or DEFAULT_INTERACTIONS[self.mode]

    @property
    def output_prefix(self) -> str:
        return self.prefix or self.context


def _write_output(path: str, text: str) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")


async def run_document(state: RunState, options: RunOptions) -> Path:
    """Generate a narrative or OpenAPI document and return the assembled file path."""
    start = time.perf_counter()
    settings = state.settings
    generation = settings.generation
    is_openapi = options.mode == "openapi"

    log.info(
        "document_run_started",
        mode=options.mode,
        context=options.context,
        interaction=options.interaction_name,
    )
    inputs = await prepare_context(state.cache, options.inputs)

    toc_instruction = join_instructions(
        OPENAPI_TOC_INSTRUCTION if is_openapi else None, options.instruction
    )
    toc = await load_or_generate_toc(
        state.cache,
        state.executor,
        options.interaction_name,
        environment=generation.environment,
        model=generation.model,
        prompt_data={**inputs, "instruction": toc_instruction},
    )

    assembler = build_assembler(
        "openapi" if is_openapi else "doc",
        content_dir=settings.paths.content_dir,
        prefix=options.output_prefix,
        page_extension=options.page_extension,
        title=options.title,
        version=options.api_version,
        server_url=settings.server.url,
    )
    await assembler.write_toc(toc)

    generator = SectionGenerator(
        state.executor,
        state.cache,
        generation,
        interaction=options.interaction_name,
        on_section=assembler.write_section,
        part_directive=OPENAPI_PART_DIRECTIVE if is_openapi else SUBSECTION_INSTRUCTION,
    )
    sections = await generator.generate(toc, inputs, options.instruction)

    path = await assembler.finalize(state.cache, toc)
    log.info(
        "document_run_complete",
        sections=len(sections),
        path=str(path),
        duration_seconds=round(time.perf_counter() - start, 2),
    )
    return path


async def run_simple(state: RunState, options: RunOptions) -> str:
    """One-pass generation from the inputs and instruction; cached once per context."""
    generation = state.settings.generation
    inputs = await prepare_context(state.cache, options.inputs)

    if await state.cache.has(SIMPLE_RESULT_KEY):
        log.info("simple_result_cached", context=options.context)
        result = await state.cache.get(SIMPLE_RESULT_KEY)
    else:
        data = {**inputs, "instruction": options.instruction or ""}

        async def attempt() -> ExecutionResult:
            return await state.executor.execute(
                options.interaction_name,
                data,
                environment=generation.environment,
                model=generation.model,
            )

        response = await call_with_retry(attempt, label="document", settings=generation)
        if response.result is None:
            raise DocWeaverError(
                code=ErrorCode.GENERATION_FAILED,
                message="Failed to generate document: remote service returned no result",
                suggestion="Check the interaction and inputs, then rerun.",
            )
        result = response.result
        await state.cache.save({SIMPLE_RESULT_KEY: result})

    text = content_text(result)
    if options.output:
        await asyncio.to_thread(_write_output, options.output, text)
        log.info("simple_result_written", path=options.output)
    return text


async def run_summaries(state: RunState, options: RunOptions) -> dict[str, Any]:
    """Summarise every input file and return the context contents."""
    files_by_key: dict[str, list[str]] = {}
    for key, patterns in options.inputs.items():
        files = expand_globs(patterns)
        if not files:
            raise DocWeaverError(
                code=ErrorCode.INPUT_NOT_FOUND,
                message=f"No files match input {key!r}: {', '.join(patterns)}",
                suggestion="Check the glob patterns (quote them so the shell does not expand them).",
            )
        files_by_key[key] = files

    generation = state.settings.generation
    summaries = await summarize_files(
        state.executor,
        state.cache,
        files_by_key,
        interaction=options.interaction_name,
        environment=generation.environment,
        model=generation.model,
        batch_size=generation.summary_batch_size,
    )
    if options.output:
        text = json.dumps(summaries, indent=2, ensure_ascii=False)
        await asyncio.to_thread(_write_output, options.output, text)
        log.info("summaries_written", path=options.output, entries=len(summaries))
    return summaries
