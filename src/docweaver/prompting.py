"""Prompt context assembly.

A prompt context is the mapping of named inputs sent as ``data`` with every
remote call. It is rebuilt for each call and never persisted.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from docweaver.models import Content, GeneratedSection, Part, Section, TableOfContents

SUBSECTION_INSTRUCTION = (
    "You are in a subsection of the {section} section. "
    "Please use ## for main subsection title, typically endpoints. "
    "Title should be a brief description of the command. Like ## Get all users"
)


def prepare_file_content(path: str | Path) -> str:
    """Wrap one source file in start/end banners naming the file.

    Bytes that are not valid UTF-8 are replaced with U+FFFD rather than failing.
    """
    path = Path(path)
    content = path.read_text(encoding="utf-8", errors="replace")
    return (
        f"\n\n========== {path.name} ========== \n\n{content}"
        f"\n\n ========== End of {path.name} ==========\n\n"
    )


def get_files_content(paths: Iterable[str | Path]) -> str:
    return "\n".join(prepare_file_content(path) for path in paths)


def content_text(content: Content) -> str:
    """Render a generated body as text; structured results become JSON."""
    if isinstance(content, str):
        return content
    return json.dumps(content, indent=2, ensure_ascii=False)


def render_sections(sections: Iterable[GeneratedSection]) -> str:
    """Concatenate sections in order, each followed by its parts, blank-line separated."""
    chunks: list[str] = []
    for section in sections:
        chunks.append(content_text(section.content))
        chunks.extend(content_text(part.content) for part in section.parts)
    return "".join(f"{chunk}\n\n" for chunk in chunks)


def join_instructions(*instructions: str | None) -> str:
    return "\n\n".join(text for text in instructions if text)


def section_instruction(base: str | None, section: Section) -> str:
    return join_instructions(base, section.instructions)


def part_instruction(
    base: str | None,
    section: Section,
    part: Part,
    directive: str = SUBSECTION_INSTRUCTION,
) -> str:
    return join_instructions(
        base, directive.format(section=section.name, part=part.name), part.instructions
    )


def build_prompt_context(
    inputs: dict[str, Any],
    *,
    toc: TableOfContents,
    previously_generated: str,
    already_generated: list[str],
    part_name: str,
    instruction: str,
) -> dict[str, Any]:
    """Assemble the ``data`` payload for one section or part call."""
    return {
        **inputs,
        "table_of_content": toc.model_dump(mode="json", exclude_none=True),
        "previously_generated": previously_generated,
        "already_generated": list(already_generated),
        "part_name": part_name,
        "instruction": instruction,
    }
