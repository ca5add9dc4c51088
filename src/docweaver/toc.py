"""Table-of-contents generation.

One schema-constrained remote call turns the aggregated source inputs into a
hierarchical outline of sections and optional parts. The outline is cached
under ``"toc"`` so resumed runs never regenerate it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from docweaver.errors import DocWeaverError, ErrorCode, RemoteExecutionError
from docweaver.models import TableOfContents
from docweaver.prompting import join_instructions

if TYPE_CHECKING:
    from docweaver.protocols import CacheProtocol, ExecutorProtocol

log = structlog.get_logger()

TOC_KEY = "toc"

_UNIT_ID_DESCRIPTION = (
    "the id of the {unit}: a short slug with no spaces, slashes or special characters, "
    "derived from the file, path or model it covers (e.g. users-list)."
)
_UNIT_NAME_DESCRIPTION = (
    "The name or title of the {unit}, should be the path in the OpenAPI spec, "
    "or the title of the section/part."
)

DEFAULT_TOC_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "sections": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {
                        "type": "string",
                        "description": _UNIT_ID_DESCRIPTION.format(unit="section"),
                    },
                    "operation": {
                        "type": "string",
                        "enum": ["create", "update", "delete"],
                        "description": (
                            "The operation to perform on the section, create, update or delete."
                        ),
                    },
                    "name": {
                        "type": "string",
                        "description": _UNIT_NAME_DESCRIPTION.format(unit="section"),
                    },
                    "description": {"type": "string"},
                    "key_instructions": {"type": "string"},
                    "parts": {
                        "type": "array",
                        "description": (
                            "When the section is too large, split it into parts, each with "
                            "a title and description. For API documentation use one part per "
                            "path; for an OpenAPI spec, one part per operation or type."
                        ),
                        "items": {
                            "type": "object",
                            "properties": {
                                "id": {
                                    "type": "string",
                                    "description": _UNIT_ID_DESCRIPTION.format(unit="part"),
                                },
                                "name": {
                                    "type": "string",
                                    "description": _UNIT_NAME_DESCRIPTION.format(unit="part"),
                                },
                                "description": {"type": "string"},
                                "instructions": {"type": "string"},
                            },
                            "required": ["id", "name"],
                        },
                    },
                },
                "required": ["id", "name", "operation"],
            },
        }
    },
    "required": ["sections"],
}

TOC_INSTRUCTION = (
    "Generate Table of Content or Operations, make sure to go through all the server "
    "side endpoints and methods. Make sure to introduce each endpoint objectives, the "
    "main objects used, and each endpoint ordered by importance related to the function "
    "of the endpoint. Write a table of content that covers the basics, and each endpoint. "
    "When generating the TOC, create the list of sections, and for each section, if the "
    "section is too large, you can add a list of parts. If the section isn't too large, "
    "you can omit the sub parts, and put all into the section."
)


async def generate_toc(
    executor: ExecutorProtocol,
    interaction: str,
    *,
    environment: str | None,
    model: str | None,
    prompt_data: dict[str, Any],
    result_schema: dict[str, Any] | None = None,
) -> TableOfContents:
    """Issue exactly one structured call and return its outline.

    Never retried here: a failed call is always fatal for the run.
    """
    data = {
        **prompt_data,
        "instruction": join_instructions(TOC_INSTRUCTION, prompt_data.get("instruction")),
    }
    try:
        response = await executor.execute(
            interaction,
            data,
            environment=environment,
            model=model,
            result_schema=result_schema or DEFAULT_TOC_SCHEMA,
        )
    except RemoteExecutionError as exc:
        log.error("toc_generation_failed", message=exc.message, detail=exc.detail)
        raise DocWeaverError(
            code=ErrorCode.GENERATION_FAILED,
            message=f"Failed to generate table of contents: {exc.message}",
            suggestion="Check the server URL, interaction name and model, then rerun.",
            recoverable=exc.is_transient,
        ) from exc

    try:
        return TableOfContents.model_validate(response.result)
    except ValidationError as exc:
        raise DocWeaverError(
            code=ErrorCode.GENERATION_FAILED,
            message=f"Remote service returned an unusable table of contents: {exc}",
            suggestion="Make sure the interaction honours the declared result schema.",
        ) from exc


async def load_or_generate_toc(
    cache: CacheProtocol,
    executor: ExecutorProtocol,
    interaction: str,
    *,
    environment: str | None,
    model: str | None,
    prompt_data: dict[str, Any],
    result_schema: dict[str, Any] | None = None,
) -> TableOfContents:
    """Return the cached outline, generating and caching it on first use."""
    if await cache.has(TOC_KEY):
        log.info("toc_cache_hit")
        try:
            return TableOfContents.model_validate(await cache.get(TOC_KEY))
        except ValidationError as exc:
            raise DocWeaverError(
                code=ErrorCode.CACHE_CORRUPT,
                message=f"Cached table of contents is invalid: {exc}",
                suggestion="Use another --context, or delete the cache file to start over.",
            ) from exc

    log.info("toc_generating", interaction=interaction)
    toc = await generate_toc(
        executor,
        interaction,
        environment=environment,
        model=model,
        prompt_data=prompt_data,
        result_schema=result_schema,
    )
    await cache.save({TOC_KEY: toc.model_dump(mode="json")})
    log.info("toc_generated", sections=len(toc.sections))
    return toc
