"""Protocol interfaces for swappable components.

The generators and the pipeline reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory stubs for the remote service
- Other execution backends to be plugged in without touching generation code
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from docweaver.models import ExecutionResult, GeneratedSection, TableOfContents


class ExecutorProtocol(Protocol):
    """Interface for the remote generation call.

    Implementations raise ``RemoteExecutionError`` when the service rejects
    the call.
    """

    async def execute(
        self,
        interaction: str,
        data: dict[str, Any],
        *,
        environment: str | None = None,
        model: str | None = None,
        result_schema: dict[str, Any] | None = None,
    ) -> ExecutionResult: ...


class CacheProtocol(Protocol):
    """Interface for the named-context content cache."""

    async def load(self) -> dict[str, Any]: ...

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def has(self, key: str) -> bool: ...

    async def save(self, partial: dict[str, Any]) -> None: ...


class AssemblerProtocol(Protocol):
    """Interface for the document assembly strategy selected by run mode."""

    async def write_toc(self, toc: TableOfContents) -> None: ...

    async def write_section(self, section: GeneratedSection, model_id: str | None) -> None: ...

    async def finalize(self, cache: CacheProtocol, toc: TableOfContents) -> Any: ...
