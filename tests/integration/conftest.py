"""Integration test fixtures.

Provides a wired RunState over an on-disk context cache and the in-memory
StubExecutor, plus a small source tree to feed as inputs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from docweaver.state import RunState

if TYPE_CHECKING:
    from pathlib import Path

    from docweaver.cache import ContentCache
    from docweaver.config import Settings


@pytest.fixture()
def source_dir(tmp_path: Path) -> Path:
    root = tmp_path / "server"
    (root / "routes").mkdir(parents=True)
    (root / "routes" / "users.ts").write_text(
        "router.get('/users', listUsers);\nrouter.get('/users/:id', getUser);\n",
        encoding="utf-8",
    )
    (root / "routes" / "auth.ts").write_text("router.post('/login', login);\n", encoding="utf-8")
    return root


@pytest.fixture()
def state(settings: Settings, cache: ContentCache, executor) -> RunState:
    return RunState(settings=settings, cache=cache, executor=executor)
