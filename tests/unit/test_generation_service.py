"""
Tests for TicketGenerationService.
"""

import asyncio
import re
import warnings
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from ticketforge.core.constants import GenerationStrategy, StrategyHint
from ticketforge.core.exceptions import CacheError
from ticketforge.domain.generation import GenerationRequest
from ticketforge.services import generation_service
from ticketforge.services.generation_service import (
    build_cache_key,
    build_emergency_content,
    structural_fingerprint,
)

KEY_RE = re.compile(r"^ticketforge:ticket:[0-9a-f]{32}:(ai|template)$")


class TestTemplatePath:
    """Generation without a reasoning engine."""

    @pytest.mark.asyncio
    async def test_jira_react_component(self, make_service, login_button_request):
        service = make_service()

        result = await service.generate(login_button_request)
        meta = result.metadata

        assert "LoginButton" in result.content
        assert meta.strategy == GenerationStrategy.TEMPLATE
        assert meta.resolved_id == "jira-component"
        assert meta.resolution_scope == "platform"
        assert meta.fallback_used is False
        assert meta.cached is False
        assert meta.confidence == pytest.approx(0.6)
        assert meta.trace == [
            "cache_check",
            "strategy_select",
            "direct_render",
            "cache_store",
            "returned",
        ]

    @pytest.mark.asyncio
    async def test_unknown_platform_uses_built_in(
        self, make_service, empty_resolver, unknown_platform_request
    ):
        service = make_service(resolver=empty_resolver)

        result = await service.generate(unknown_platform_request)

        assert result.metadata.resolution_scope == "built_in"
        assert result.metadata.resolved_id == "zzz-component-default"
        assert "Widget" in result.content

    @pytest.mark.asyncio
    async def test_unknown_platform_with_shipped_templates(self, make_service, unknown_platform_request):
        result = await make_service().generate(unknown_platform_request)

        assert result.metadata.resolution_scope == "custom"
        assert result.metadata.resolved_id == "custom-defaults"

    @pytest.mark.asyncio
    async def test_template_hint_skips_engine(self, make_service, reasoning_engine, login_button_request):
        service = make_service(reasoning_engine=reasoning_engine)
        request = login_button_request.model_copy(update={"strategy_hint": StrategyHint.TEMPLATE})

        result = await service.generate(request)

        assert result.metadata.strategy == GenerationStrategy.TEMPLATE
        assert reasoning_engine.prompts == []


class TestAIPath:
    """Generation through the reasoning engine."""

    @pytest.mark.asyncio
    async def test_analysis_is_rendered(self, make_service, reasoning_engine, login_button_request):
        service = make_service(reasoning_engine=reasoning_engine)

        result = await service.generate(login_button_request)
        meta = result.metadata

        assert meta.strategy == GenerationStrategy.AI
        assert meta.prompt_id == "comprehensive-visual-analysis"
        assert meta.confidence == pytest.approx(0.9)
        assert meta.fallback_used is False
        assert "LoginButton" in result.content
        assert "Build on the shared Button primitive." in result.content
        assert meta.trace[2:4] == ["ai_reasoning", "render"]

        prompt = reasoning_engine.prompts[0]
        assert "Component Name: LoginButton" in prompt
        assert "Element Count: 2" in prompt
        assert "React, TypeScript, Jest" in prompt

    @pytest.mark.asyncio
    async def test_legacy_strategy_alias(self, make_service, reasoning_engine, login_button_request):
        service = make_service(reasoning_engine=reasoning_engine)
        request = GenerationRequest(
            **login_button_request.model_dump(exclude={"strategy_hint"}),
            strategy_hint="ai-powered",
        )

        result = await service.generate(request)

        assert result.metadata.strategy == GenerationStrategy.AI

    @pytest.mark.asyncio
    async def test_engine_failure_falls_back(
        self, make_service, failing_engine, memory_cache, login_button_request
    ):
        service = make_service(reasoning_engine=failing_engine)

        result = await service.generate(login_button_request)
        meta = result.metadata

        assert meta.strategy == GenerationStrategy.TEMPLATE
        assert meta.fallback_used is True
        assert meta.confidence == pytest.approx(0.5)
        assert "ReasoningError" in meta.error
        assert "LoginButton" in result.content
        assert (await memory_cache.get_stats())["total_entries"] == 0

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, make_service, make_engine, login_button_request):
        service = make_service(
            reasoning_engine=make_engine(delay=1.0),
            reasoning_timeout=0.05,
        )

        result = await service.generate(login_button_request)

        assert result.metadata.fallback_used is True
        assert "ReasoningTimeoutError" in result.metadata.error

    @pytest.mark.asyncio
    async def test_unknown_prompt_falls_back(self, make_service, reasoning_engine, login_button_request):
        service = make_service(reasoning_engine=reasoning_engine, prompt_id="does-not-exist")

        result = await service.generate(login_button_request)

        assert result.metadata.fallback_used is True
        assert "PromptNotFoundError" in result.metadata.error
        assert reasoning_engine.prompts == []


class TestEmergencyPath:
    """Generation when rendering itself fails."""

    @pytest.mark.asyncio
    async def test_renderer_failure(self, make_service, memory_cache, login_button_request):
        renderer = MagicMock()
        renderer.render.side_effect = RuntimeError("boom")
        service = make_service(renderer=renderer)

        result = await service.generate(login_button_request)
        meta = result.metadata

        assert meta.strategy == GenerationStrategy.EMERGENCY
        assert meta.fallback_used is True
        assert meta.confidence == pytest.approx(0.2)
        assert result.content.startswith("# LoginButton Implementation")
        assert meta.trace[-2:] == ["emergency_fallback", "returned"]
        assert (await memory_cache.get_stats())["total_entries"] == 0

    def test_emergency_content(self):
        content = build_emergency_content("Component", "COMPONENT")

        assert content.startswith("# Component Implementation")
        assert "## Acceptance Criteria" in content


class TestCaching:
    """Result caching."""

    @pytest.mark.asyncio
    async def test_second_call_is_cached(self, make_service, login_button_request):
        service = make_service()

        first = await service.generate(login_button_request)
        second = await service.generate(login_button_request)

        assert first.metadata.cached is False
        assert second.metadata.cached is True
        assert second.metadata.trace == ["cache_check", "returned"]
        assert second.content == first.content

    @pytest.mark.asyncio
    async def test_bypass_cache(self, make_service, login_button_request):
        service = make_service()
        await service.generate(login_button_request)

        request = login_button_request.model_copy(update={"bypass_cache": True})
        result = await service.generate(request)

        assert result.metadata.cached is False

    @pytest.mark.asyncio
    async def test_failing_cache_store_is_ignored(self, make_service, login_button_request):
        store = AsyncMock()
        store.get.side_effect = CacheError("connection refused")
        store.set.side_effect = CacheError("connection refused")
        service = make_service(cache_store=store)

        result = await service.generate(login_button_request)

        assert "LoginButton" in result.content
        assert result.metadata.cached is False
        store.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_a_miss(self, make_service, memory_cache, login_button_request):
        service = make_service()
        await memory_cache.set(service.build_cache_key(login_button_request), "{not json")

        result = await service.generate(login_button_request)

        assert result.metadata.cached is False
        assert "LoginButton" in result.content

    @pytest.mark.asyncio
    async def test_no_cache_store(self, make_service, login_button_request):
        service = make_service(cache_store=None)

        first = await service.generate(login_button_request)
        second = await service.generate(login_button_request)

        assert first.metadata.cached is False
        assert second.metadata.cached is False

    @pytest.mark.asyncio
    async def test_concurrent_identical_requests_share_one_entry(
        self, make_service, memory_cache, login_button_request
    ):
        service = make_service()

        results = await asyncio.gather(
            service.generate(login_button_request),
            service.generate(login_button_request.model_copy(deep=True)),
        )

        assert all("LoginButton" in result.content for result in results)
        assert (await memory_cache.get_stats())["total_entries"] == 1

    @pytest.mark.asyncio
    async def test_coalescing_calls_engine_once(self, make_service, make_engine, login_button_request):
        engine = make_engine(delay=0.05)
        service = make_service(reasoning_engine=engine, coalesce_requests=True)

        results = await asyncio.gather(*(service.generate(login_button_request) for _ in range(3)))

        assert len(engine.prompts) == 1
        assert len({result.content for result in results}) == 1
        assert results[0] is not results[1]


class TestCacheKeys:
    """Deterministic cache keys."""

    def test_key_format(self, login_button_request):
        key = build_cache_key(login_button_request, GenerationStrategy.TEMPLATE)

        assert KEY_RE.match(key)
        assert key.endswith(":template")

    def test_key_ignores_dict_order_and_case(self):
        first = GenerationRequest(
            platform="Jira",
            tech_stack=["React"],
            component_context={"name": "Card", "type": "COMPONENT", "id": "1"},
        )
        second = GenerationRequest(
            platform="jira",
            tech_stack=["react"],
            component_context={"id": "1", "type": "COMPONENT", "name": "Card"},
        )

        assert build_cache_key(first, GenerationStrategy.AI) == build_cache_key(
            second, GenerationStrategy.AI
        )

    def test_key_depends_on_strategy_and_structure(self, login_button_request):
        other = login_button_request.model_copy(deep=True)
        other.component_context["children"].append({"id": "9", "name": "Badge"})

        template_key = build_cache_key(login_button_request, GenerationStrategy.TEMPLATE)

        assert template_key != build_cache_key(login_button_request, GenerationStrategy.AI)
        assert template_key != build_cache_key(other, GenerationStrategy.TEMPLATE)

    def test_service_key_tracks_selected_strategy(
        self, make_service, reasoning_engine, login_button_request
    ):
        assert make_service().build_cache_key(login_button_request).endswith(":template")
        assert make_service(reasoning_engine=reasoning_engine).build_cache_key(
            login_button_request
        ).endswith(":ai")

    def test_fingerprint_is_cycle_safe(self):
        node: dict = {"id": "1", "name": "Loop", "children": []}
        node["children"].append(node)

        assert structural_fingerprint(node) == {
            "id": "1",
            "name": "Loop",
            "type": None,
            "children": [{"ref": "1"}],
        }


class TestHealthCheck:
    """Tests for health_check."""

    @pytest.mark.asyncio
    async def test_reports_collaborators(self, make_service, reasoning_engine):
        status = await make_service(reasoning_engine=reasoning_engine).health_check()

        assert status["strategies"] == ["ai", "template", "emergency"]
        assert status["reasoning_engine"] == {"name": "fake", "healthy": True}
        assert status["cache"]["backend"] == "memory"
        assert "comprehensive-visual-analysis" in status["prompts"]


class TestModuleSource:
    def test_compiles_without_warnings(self):
        path = Path(generation_service.__file__)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(path.read_text(encoding="utf-8"), str(path), "exec")
