"""Unit tests for the section/part walk in generator.py.

Uses the in-memory StubExecutor from conftest; every test runs against a
fresh on-disk context cache under tmp_path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest

from docweaver.cache import ContentCache, content_key, section_key
from docweaver.errors import DocWeaverError, ErrorCode, RemoteExecutionError
from docweaver.generator import SectionGenerator, part_label, restore_section
from docweaver.models import TableOfContents

if TYPE_CHECKING:
    from docweaver.config import Settings


def _generator(executor: Any, cache: ContentCache, settings: Settings, **kwargs: Any) -> SectionGenerator:
    return SectionGenerator(executor, cache, settings.generation, interaction="GenerateDoc", **kwargs)


def _server_error() -> RemoteExecutionError:
    return RemoteExecutionError("HTTP 500 executing GenerateDoc", status_code=500)


INPUTS = {"serverApi": "<sources>"}


# ---------------------------------------------------------------------------
# Full walk
# ---------------------------------------------------------------------------


class TestGenerate:
    async def test_scenario_call_order(self, executor, cache, settings, scenario_toc) -> None:
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert executor.part_names == ["Intro", "Auth", "Auth > Login"]

    async def test_every_section_marked_done(self, executor, cache, settings, scenario_toc) -> None:
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert await cache.has(section_key("intro"))
        assert await cache.has(section_key("auth"))
        assert await cache.get(content_key("auth", "login")) == "<content for Auth > Login>"

    async def test_returns_sections_in_toc_order(self, executor, cache, settings, scenario_toc) -> None:
        sections = await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert [s.id for s in sections] == ["intro", "auth"]
        assert sections[1].content == "<content for Auth>"
        assert [p.content for p in sections[1].parts] == ["<content for Auth > Login>"]

    async def test_previously_generated_grows_with_each_section(
        self, executor, cache, settings, scenario_toc
    ) -> None:
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        intro_call, auth_call, login_call = executor.calls
        assert intro_call["data"]["previously_generated"] == ""
        assert auth_call["data"]["previously_generated"] == "<content for Intro>\n\n"
        assert login_call["data"]["previously_generated"] == "<content for Intro>\n\n"

    async def test_already_generated_memo(self, executor, cache, settings, scenario_toc) -> None:
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        memos = [call["data"]["already_generated"] for call in executor.calls]
        assert memos == [[], ["Intro"], ["Intro", "Auth"]]

    async def test_prompt_context_carries_inputs_and_toc(
        self, executor, cache, settings, scenario_toc
    ) -> None:
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS, "Be brief.")
        data = executor.calls[0]["data"]
        assert data["serverApi"] == "<sources>"
        assert [s["id"] for s in data["table_of_content"]["sections"]] == ["intro", "auth"]
        assert data["instruction"] == "Be brief."
        assert executor.calls[0]["environment"] == "env-1"
        assert executor.calls[0]["model"] == "model-1"

    async def test_part_instruction_includes_subsection_directive(
        self, executor, cache, settings, scenario_toc
    ) -> None:
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS, "Be brief.")
        instruction = executor.calls[2]["data"]["instruction"]
        assert instruction.startswith("Be brief.\n\n")
        assert "subsection of the Auth section" in instruction

    async def test_custom_part_directive(self, executor, cache, settings, scenario_toc) -> None:
        generator = _generator(executor, cache, settings, part_directive="Write {part} of {section}.")
        await generator.generate(scenario_toc, INPUTS)
        assert executor.calls[2]["data"]["instruction"] == "Write Login of Auth."

    async def test_on_section_called_per_generated_section(
        self, executor, cache, settings, scenario_toc
    ) -> None:
        sink = AsyncMock()
        await _generator(executor, cache, settings, on_section=sink).generate(scenario_toc, INPUTS)
        assert [call.args[0].id for call in sink.await_args_list] == ["intro", "auth"]
        assert all(call.args[1] == "stub-model" for call in sink.await_args_list)

    async def test_structured_content_is_kept(self, make_executor, cache, settings) -> None:
        toc = TableOfContents.model_validate({"sections": [{"id": "paths", "name": "Paths"}]})
        executor = make_executor(responder=lambda *_: {"/users": {"get": {}}})
        sections = await _generator(executor, cache, settings).generate(toc, INPUTS)
        assert sections[0].content == {"/users": {"get": {}}}
        assert await cache.get(content_key("paths")) == {"/users": {"get": {}}}

    async def test_empty_result_is_a_failure(self, make_executor, cache, settings, scenario_toc) -> None:
        executor = make_executor(responder=lambda *_: None)
        with pytest.raises(DocWeaverError) as exc_info:
            await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert exc_info.value.code == ErrorCode.GENERATION_FAILED
        assert not await cache.has(section_key("intro"))


# ---------------------------------------------------------------------------
# Resumption
# ---------------------------------------------------------------------------


class TestResume:
    async def test_second_run_makes_no_calls(self, make_executor, cache, settings, scenario_toc) -> None:
        await _generator(make_executor(), cache, settings).generate(scenario_toc, INPUTS)

        rerun = make_executor()
        sections = await _generator(rerun, cache, settings).generate(scenario_toc, INPUTS)
        assert rerun.calls == []
        assert [s.id for s in sections] == ["intro", "auth"]
        assert sections[1].parts[0].content == "<content for Auth > Login>"

    async def test_resume_after_fatal_failure(self, make_executor, cache, settings, scenario_toc) -> None:
        def fail_on_auth(interaction, data, schema):
            if data["part_name"] == "Auth":
                raise RemoteExecutionError("Invalid API key", status_code=401)
            return f"<content for {data['part_name']}>"

        with pytest.raises(DocWeaverError):
            await _generator(make_executor(responder=fail_on_auth), cache, settings).generate(
                scenario_toc, INPUTS
            )

        assert await cache.has(section_key("intro"))
        assert not await cache.has(section_key("auth"))

        rerun = make_executor()
        await _generator(rerun, cache, settings).generate(scenario_toc, INPUTS)
        assert rerun.part_names == ["Auth", "Auth > Login"]
        auth_call = rerun.calls[0]["data"]
        assert auth_call["previously_generated"] == "<content for Intro>\n\n"
        assert auth_call["already_generated"] == ["Intro"]

    async def test_finished_parts_are_reused(self, make_executor, cache, settings) -> None:
        toc = TableOfContents.model_validate(
            {
                "sections": [
                    {
                        "id": "users",
                        "name": "Users",
                        "parts": [
                            {"id": "list", "name": "List users"},
                            {"id": "create", "name": "Create user"},
                        ],
                    }
                ]
            }
        )

        def responder(interaction, data, schema):
            if data["part_name"] == "Users > Create user":
                raise RemoteExecutionError("bad request", status_code=400)
            return f"<content for {data['part_name']}>"

        with pytest.raises(DocWeaverError):
            await _generator(make_executor(responder=responder), cache, settings).generate(toc, INPUTS)
        assert await cache.has(content_key("users", "list"))
        assert not await cache.has(section_key("users"))

        rerun = make_executor()
        await _generator(rerun, cache, settings).generate(toc, INPUTS)
        assert rerun.part_names == ["Users", "Users > Create user"]
        assert await cache.has(section_key("users"))

    @pytest.mark.parametrize(
        "sections",
        [
            [
                {"id": "users", "name": "Users", "parts": [{"id": "list", "name": "List"}]},
                {"id": "users-list", "name": "Users list"},
            ],
            [
                {"id": "users-list", "name": "Users list"},
                {"id": "users", "name": "Users", "parts": [{"id": "list", "name": "List"}]},
            ],
        ],
    )
    async def test_part_and_hyphenated_section_keep_separate_bodies(
        self, make_executor, cache, settings, sections
    ) -> None:
        toc = TableOfContents.model_validate({"sections": sections})
        executor = make_executor()
        await _generator(executor, cache, settings).generate(toc, INPUTS)

        assert sorted(executor.part_names) == ["Users", "Users > List", "Users list"]
        rerun = await _generator(make_executor(), cache, settings).generate(toc, INPUTS)
        users = next(s for s in rerun if s.id == "users")
        other = next(s for s in rerun if s.id == "users-list")
        assert users.parts[0].content == "<content for Users > List>"
        assert other.content == "<content for Users list>"

    async def test_restore_section(self, executor, cache, settings, scenario_toc) -> None:
        assert await restore_section(cache, scenario_toc.sections[0]) is None
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        restored = await restore_section(cache, scenario_toc.sections[1])
        assert restored is not None
        assert restored.content == "<content for Auth>"
        assert restored.parts[0].name == "Login"


# ---------------------------------------------------------------------------
# Retry boundary
# ---------------------------------------------------------------------------


class TestRetryBoundary:
    async def test_four_failures_then_success(
        self, executor, cache, settings, scenario_toc, no_sleep
    ) -> None:
        executor.failures = [_server_error() for _ in range(4)]
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert executor.part_names.count("Intro") == 5
        assert await cache.has(section_key("intro"))
        assert no_sleep.await_count == 4

    async def test_five_failures_leave_section_pending(
        self, executor, cache, settings, scenario_toc, no_sleep
    ) -> None:
        executor.failures = [_server_error() for _ in range(5)]
        with pytest.raises(DocWeaverError) as exc_info:
            await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert exc_info.value.code == ErrorCode.RETRIES_EXHAUSTED
        assert len(executor.calls) == 5
        assert not await cache.has(section_key("intro"))

    async def test_part_calls_are_retried(self, make_executor, cache, settings, scenario_toc, no_sleep) -> None:
        failures = [_server_error(), _server_error()]

        def responder(interaction, data, schema):
            if data["part_name"] == "Auth > Login" and failures:
                raise failures.pop(0)
            return f"<content for {data['part_name']}>"

        executor = make_executor(responder=responder)
        await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert executor.part_names == ["Intro", "Auth", "Auth > Login", "Auth > Login", "Auth > Login"]
        assert await cache.has(section_key("auth"))

    async def test_non_transient_failure_is_not_retried(
        self, executor, cache, settings, scenario_toc, no_sleep
    ) -> None:
        executor.failures = [RemoteExecutionError("Invalid API key", status_code=401)]
        with pytest.raises(DocWeaverError) as exc_info:
            await _generator(executor, cache, settings).generate(scenario_toc, INPUTS)
        assert exc_info.value.code == ErrorCode.GENERATION_FAILED
        assert len(executor.calls) == 1
        no_sleep.assert_not_awaited()


def test_part_label(scenario_toc) -> None:
    auth = scenario_toc.sections[1]
    assert part_label(auth, auth.parts[0]) == "Auth > Login"
