"""Run state container.

RunState is created once per CLI invocation and passed explicitly to every
pipeline step. There is no module-level cache or client: the cache handle is
scoped to exactly one named context.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from docweaver.config import Settings
    from docweaver.protocols import CacheProtocol, ExecutorProtocol


@dataclass
class RunState:
    """Holds all shared runtime state for one generation run."""

    settings: Settings
    cache: CacheProtocol
    executor: ExecutorProtocol
