from __future__ import annotations

from typing import Any

from pydantic import BaseModel

# Raw remote-call result: markdown text, or structured data for schema-constrained calls
Content = str | dict[str, Any] | list[Any]


class GeneratedPart(BaseModel):
    id: str
    name: str
    content: Content


class GeneratedSection(BaseModel):
    """A section produced exactly once per id, with its parts in declared order."""

    id: str
    name: str
    content: Content
    parts: list[GeneratedPart] = []


class ExecutionResult(BaseModel):
    """Response of one remote generation call."""

    result: Any
    model_id: str | None = None
