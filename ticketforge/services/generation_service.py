"""
Ticket generation service - strategy selection, caching and fallback.

    cache_check -> strategy_select -> ai_reasoning -> render -> cache_store -> returned
    strategy_select or a failed ai_reasoning -> direct_render -> cache_store
    a failed direct_render -> emergency_fallback -> returned

generate() never raises: every path ends in a GenerationResult.
"""

import asyncio
import hashlib
import json
from typing import Any, Optional

from pydantic import ValidationError

from ticketforge.core.config import settings
from ticketforge.core.constants import (
    AI_DEFAULT_CONFIDENCE,
    CACHE_TTL_SECONDS,
    EMERGENCY_CONFIDENCE,
    FALLBACK_CONFIDENCE,
    FINGERPRINT_DEPTH,
    TEMPLATE_CONFIDENCE,
    TICKET_CACHE_KEY,
    GenerationStrategy,
    StrategyHint,
)
from ticketforge.core.exceptions import ReasoningTimeoutError
from ticketforge.core.logging import LogContext, get_logger
from ticketforge.domain.context import RenderContext
from ticketforge.domain.generation import (
    GenerationMetadata,
    GenerationRequest,
    GenerationResult,
    ReasoningAnalysis,
)
from ticketforge.orchestration.state_machine import (
    GenerationRun,
    GenerationState,
    create_generation_state_machine,
)
from ticketforge.prompts.compiler import ReasoningPromptCompiler
from ticketforge.reasoning.client import ReasoningEngine
from ticketforge.repositories.base import BaseCacheStore
from ticketforge.services.context_builder import ContextBuilder
from ticketforge.templates.renderer import TemplateRenderer
from ticketforge.templates.resolver import TemplateResolver

logger = get_logger(__name__)


def structural_fingerprint(
    node: Any, depth: int = 0, max_depth: int = FINGERPRINT_DEPTH, visited: Optional[set[int]] = None
) -> Any:
    """Id, name, type and children of a design node, bounded and cycle-safe."""
    if not isinstance(node, dict):
        return None
    visited = visited if visited is not None else set()
    if id(node) in visited:
        return {"ref": node.get("id")}
    visited.add(id(node))

    fingerprint: dict[str, Any] = {
        "id": node.get("id"),
        "name": node.get("name"),
        "type": node.get("type"),
    }
    children = node.get("children")
    if isinstance(children, list) and children:
        if depth < max_depth:
            fingerprint["children"] = [
                structural_fingerprint(child, depth + 1, max_depth, visited) for child in children
            ]
        else:
            fingerprint["child_count"] = len(children)
    return fingerprint


def build_cache_key(request: GenerationRequest, strategy: GenerationStrategy) -> str:
    """Deterministic cache key over the canonicalized request and the strategy."""
    payload = {
        "document_type": request.document_type.strip().lower(),
        "platform": request.platform.strip().lower(),
        "tech_stack": [item.strip().lower() for item in request.tech_stack],
        "component": structural_fingerprint(request.component_context),
        "overrides": {
            "project": request.project,
            "organization": request.organization,
            "team": request.team,
        },
        "strategy": strategy.value,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return TICKET_CACHE_KEY.format(digest=digest[:32], strategy=strategy.value)


def build_emergency_content(component_name: str, component_type: str) -> str:
    """Minimal ticket from the component name and type only."""
    return (
        f"# {component_name} Implementation\n\n"
        f"## Description\n\n"
        f"Implement the `{component_name}` {component_type.lower()} from the design.\n\n"
        f"## Technical Requirements\n\n"
        f"- Build `{component_name}` as a reusable component\n"
        f"- Follow the existing design system tokens\n"
        f"- Meet accessibility requirements\n\n"
        f"## Acceptance Criteria\n\n"
        f"- [ ] Matches the design\n"
        f"- [ ] Responsive at supported breakpoints\n"
        f"- [ ] Unit tests added\n\n"
        f"## Implementation Notes\n\n"
        f"Generated from minimal component data. Review before scheduling.\n"
    )


class TicketGenerationService:
    """
    Generates tickets for design components.

    Prefers the AI path (compile prompt, call the reasoning engine, render
    with its analysis) when the request allows it and an engine is
    configured; otherwise renders the resolved template directly.
    """

    def __init__(
        self,
        resolver: TemplateResolver,
        renderer: TemplateRenderer,
        compiler: ReasoningPromptCompiler,
        context_builder: Optional[ContextBuilder] = None,
        reasoning_engine: Optional[ReasoningEngine] = None,
        cache_store: Optional[BaseCacheStore] = None,
        cache_ttl_seconds: int = CACHE_TTL_SECONDS,
        prompt_id: Optional[str] = None,
        reasoning_timeout: Optional[float] = None,
        coalesce_requests: bool = False,
    ) -> None:
        """
        Initialize the service.

        Args:
            resolver: Template resolver
            renderer: Template renderer
            compiler: Reasoning prompt compiler
            context_builder: Builds render contexts from requests
            reasoning_engine: External reasoning collaborator (AI path disabled when None)
            cache_store: Result cache (caching disabled when None)
            cache_ttl_seconds: TTL for cached results
            prompt_id: Prompt compiled for the AI path
            reasoning_timeout: Seconds before a reasoning call counts as failed
            coalesce_requests: Share one in-flight run between identical requests
        """
        self.resolver = resolver
        self.renderer = renderer
        self.compiler = compiler
        self.context_builder = context_builder or ContextBuilder()
        self.reasoning_engine = reasoning_engine
        self.cache_store = cache_store
        self.cache_ttl_seconds = cache_ttl_seconds
        self.prompt_id = prompt_id or settings.prompts.default_prompt_id
        self.reasoning_timeout = reasoning_timeout
        self.coalesce_requests = coalesce_requests
        self._inflight: dict[str, asyncio.Future] = {}

    def select_strategy(self, request: GenerationRequest) -> GenerationStrategy:
        """Strategy the request will try first."""
        wants_ai = request.strategy_hint in (StrategyHint.AUTO, StrategyHint.AI)
        if wants_ai and self.reasoning_engine is not None:
            return GenerationStrategy.AI
        return GenerationStrategy.TEMPLATE

    def build_cache_key(self, request: GenerationRequest) -> str:
        return build_cache_key(request, self.select_strategy(request))

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Generate a ticket.

        Args:
            request: Generation request

        Returns:
            Generated result; failures are reported in its metadata
        """
        try:
            strategy = self.select_strategy(request)
            cache_key = build_cache_key(request, strategy)
        except Exception as e:
            logger.error("Could not prepare generation", error=str(e))
            return self._emergency_result(request, error=str(e), trace=["emergency_fallback"])

        with LogContext(cache_key=cache_key, platform=request.platform):
            if not self.coalesce_requests or request.bypass_cache:
                return await self._run(request, strategy, cache_key)

            shared = self._inflight.get(cache_key)
            if shared is None:
                shared = asyncio.ensure_future(self._run(request, strategy, cache_key))
                self._inflight[cache_key] = shared
                shared.add_done_callback(lambda _: self._inflight.pop(cache_key, None))
            else:
                logger.debug("Joining in-flight generation")
            result = await asyncio.shield(shared)
            return result.model_copy(deep=True)

    async def _run(
        self, request: GenerationRequest, strategy: GenerationStrategy, cache_key: str
    ) -> GenerationResult:
        run = GenerationRun(machine=create_generation_state_machine(), cache_key=cache_key)
        try:
            if not request.bypass_cache:
                cached = await self._cache_get(cache_key)
                if cached is not None:
                    run.advance(GenerationState.RETURNED, cached=True)
                    cached.metadata.cached = True
                    cached.metadata.trace = run.trace
                    logger.info("Returning cached ticket", strategy=cached.metadata.strategy)
                    return cached

            run.advance(GenerationState.STRATEGY_SELECT, strategy=strategy.value)
            context = self.context_builder.build(request)

            result: Optional[GenerationResult] = None
            ai_error: Optional[str] = None
            if strategy == GenerationStrategy.AI:
                run.advance(GenerationState.AI_REASONING)
                try:
                    result = await self._generate_with_ai(request, context, run)
                except Exception as e:
                    ai_error = f"{type(e).__name__}: {e}"
                    run.fail(ai_error)
                    logger.warning("AI generation failed, falling back to template", error=ai_error)

            if result is None:
                run.advance(GenerationState.DIRECT_RENDER, fallback=ai_error is not None)
                try:
                    result = await self._generate_direct(request, context, ai_error)
                except Exception as e:
                    run.fail(str(e))
                    logger.error("Template generation failed", error=str(e))
                    run.advance(GenerationState.EMERGENCY_FALLBACK)
                    run.advance(GenerationState.RETURNED)
                    return self._emergency_result(request, error=str(e), trace=run.trace)

            run.advance(GenerationState.CACHE_STORE)
            if result.metadata.fallback_used:
                logger.debug("Fallback result not cached")
            else:
                await self._cache_set(cache_key, result)

            run.advance(GenerationState.RETURNED)
            result.metadata.trace = run.trace
            logger.info(
                "Ticket generated",
                strategy=result.metadata.strategy,
                template_id=result.metadata.resolved_id,
                fallback_used=result.metadata.fallback_used,
            )
            return result

        except Exception as e:
            logger.error("Generation failed unexpectedly", state=run.current_state, error=str(e))
            trace = run.trace + [
                GenerationState.EMERGENCY_FALLBACK.value,
                GenerationState.RETURNED.value,
            ]
            return self._emergency_result(request, error=str(e), trace=trace)

    async def _generate_with_ai(
        self, request: GenerationRequest, context: RenderContext, run: GenerationRun
    ) -> GenerationResult:
        compiled = await self.compiler.compile(self.prompt_id, context)
        analysis = await self._call_reasoning(compiled.text)

        run.advance(GenerationState.RENDER)
        resolved = await self.resolver.resolve(
            request.platform, request.document_type, request.tech_stack
        )
        content = self.renderer.render(resolved, context.with_namespace("ai", analysis.as_namespace()))

        confidence = analysis.confidence
        return GenerationResult(
            content=content,
            metadata=GenerationMetadata(
                strategy=GenerationStrategy.AI,
                confidence=AI_DEFAULT_CONFIDENCE if confidence is None else confidence,
                resolved_id=resolved.template_id,
                resolution_scope=resolved.scope,
                prompt_id=compiled.prompt_id,
            ),
        )

    async def _call_reasoning(self, prompt: str) -> ReasoningAnalysis:
        engine = self.reasoning_engine
        if engine is None:
            raise RuntimeError("No reasoning engine configured")
        if self.reasoning_timeout is None:
            return await engine.analyze(prompt)
        try:
            return await asyncio.wait_for(engine.analyze(prompt), timeout=self.reasoning_timeout)
        except asyncio.TimeoutError as e:
            raise ReasoningTimeoutError(self.reasoning_timeout) from e

    async def _generate_direct(
        self, request: GenerationRequest, context: RenderContext, ai_error: Optional[str]
    ) -> GenerationResult:
        resolved = await self.resolver.resolve(
            request.platform, request.document_type, request.tech_stack
        )
        content = self.renderer.render(resolved, context)
        fallback = ai_error is not None
        return GenerationResult(
            content=content,
            metadata=GenerationMetadata(
                strategy=GenerationStrategy.TEMPLATE,
                confidence=FALLBACK_CONFIDENCE if fallback else TEMPLATE_CONFIDENCE,
                resolved_id=resolved.template_id,
                resolution_scope=resolved.scope,
                fallback_used=fallback,
                error=ai_error,
            ),
        )

    @staticmethod
    def _emergency_result(
        request: GenerationRequest, error: Optional[str], trace: list[str]
    ) -> GenerationResult:
        return GenerationResult(
            content=build_emergency_content(request.component_name, request.component_type),
            metadata=GenerationMetadata(
                strategy=GenerationStrategy.EMERGENCY,
                confidence=EMERGENCY_CONFIDENCE,
                fallback_used=True,
                error=error,
                trace=trace,
            ),
        )

    # =========================================================================
    # Cache
    # =========================================================================

    async def _cache_get(self, key: str) -> Optional[GenerationResult]:
        if self.cache_store is None:
            return None
        try:
            raw = await self.cache_store.get(key)
        except Exception as e:
            logger.warning("Cache read failed, continuing uncached", error=str(e))
            return None
        if raw is None:
            return None

        try:
            return GenerationResult.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning("Discarding unreadable cache entry", error=str(e))
            return None

    async def _cache_set(self, key: str, result: GenerationResult) -> None:
        if self.cache_store is None:
            return
        try:
            await self.cache_store.set(key, result.model_dump_json(), self.cache_ttl_seconds)
        except Exception as e:
            logger.warning("Cache write failed, result not cached", error=str(e))

    # =========================================================================
    # Diagnostics
    # =========================================================================

    async def health_check(self) -> dict[str, Any]:
        """Availability of each collaborator."""
        status: dict[str, Any] = {
            "strategies": [GenerationStrategy.TEMPLATE.value, GenerationStrategy.EMERGENCY.value],
            "reasoning_engine": None,
            "cache": None,
            "templates": self.resolver.cache_stats(),
        }

        if self.reasoning_engine is not None:
            status["strategies"].insert(0, GenerationStrategy.AI.value)
            try:
                healthy = await self.reasoning_engine.health_check()
            except Exception as e:
                logger.warning("Reasoning engine health check failed", error=str(e))
                healthy = False
            status["reasoning_engine"] = {
                "name": self.reasoning_engine.engine_name,
                "healthy": healthy,
            }

        if self.cache_store is not None:
            try:
                status["cache"] = await self.cache_store.get_stats()
            except Exception as e:
                status["cache"] = {"error": str(e)}

        status["prompts"] = await self.compiler.available_prompts()
        return status
