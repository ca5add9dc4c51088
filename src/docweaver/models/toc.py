from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

_RESERVED_IDS = frozenset({".", ".."})


def check_unit_id(unit_id: str) -> str:
    """Ids name cache keys and output folders, so they must be a single path segment."""
    if not unit_id.strip() or unit_id in _RESERVED_IDS or "/" in unit_id or "\\" in unit_id:
        raise ValueError(f"Invalid id {unit_id!r}: use a slug without slashes")
    return unit_id


def _check_unique(ids: list[str], scope: str) -> None:
    seen: set[str] = set()
    for unit_id in ids:
        if unit_id in seen:
            raise ValueError(f"Duplicate id {unit_id!r} in {scope}")
        seen.add(unit_id)


class Part(BaseModel):
    """A sub-unit of a section, generated by its own remote call."""

    id: str = Field(validation_alias=AliasChoices("id", "slug"))
    name: str = Field(validation_alias=AliasChoices("name", "title"))
    description: str = ""
    instructions: str | None = Field(
        default=None, validation_alias=AliasChoices("instructions", "key_instructions")
    )

    @field_validator("id")
    @classmethod
    def valid_id(cls, value: str) -> str:
        return check_unit_id(value)


class Section(BaseModel):
    """Top-level unit of the outline. Order within the TOC is significant."""

    id: str = Field(validation_alias=AliasChoices("id", "slug"))
    name: str = Field(validation_alias=AliasChoices("name", "title"))
    description: str = ""
    instructions: str | None = Field(
        default=None, validation_alias=AliasChoices("instructions", "key_instructions")
    )
    operation: Literal["create", "update", "delete"] | None = None
    parts: list[Part] = []

    @field_validator("id")
    @classmethod
    def valid_id(cls, value: str) -> str:
        return check_unit_id(value)

    @model_validator(mode="after")
    def unique_part_ids(self) -> Section:
        _check_unique([part.id for part in self.parts], f"section {self.id!r}")
        return self


class TableOfContents(BaseModel):
    """Hierarchical outline driving generation and assembly order."""

    sections: list[Section]

    @model_validator(mode="after")
    def unique_section_ids(self) -> TableOfContents:
        _check_unique([section.id for section in self.sections], "table of contents")
        return self
