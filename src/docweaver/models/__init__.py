from __future__ import annotations

from docweaver.models.generated import (
    Content,
    ExecutionResult,
    GeneratedPart,
    GeneratedSection,
)
from docweaver.models.toc import Part, Section, TableOfContents, check_unit_id

__all__ = [
    # outline
    "TableOfContents",
    "Section",
    "Part",
    # generated units
    "Content",
    "GeneratedSection",
    "GeneratedPart",
    # remote calls
    "ExecutionResult",
    # validation
    "check_unit_id",
]
