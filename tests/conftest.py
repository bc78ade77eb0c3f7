"""
Pytest configuration and fixtures.
"""

import asyncio
from pathlib import Path
from typing import Callable, Optional

import pytest

from ticketforge.core.config import RESOURCES_DIR
from ticketforge.core.exceptions import ReasoningError
from ticketforge.domain.generation import GenerationRequest, ReasoningAnalysis
from ticketforge.prompts.compiler import ReasoningPromptCompiler
from ticketforge.reasoning.client import ReasoningEngine
from ticketforge.repositories.cache_repo import InMemoryCacheRepository
from ticketforge.services.generation_service import TicketGenerationService
from ticketforge.templates.renderer import TemplateRenderer
from ticketforge.templates.resolver import TemplateResolver

SHIPPED_TEMPLATES = RESOURCES_DIR / "templates"
SHIPPED_PROMPTS = RESOURCES_DIR / "prompts"

ANALYSIS_PAYLOAD = {
    "visualUnderstanding": "A primary call-to-action button with a label and an icon.",
    "componentAnalysis": "Stateless presentational component with hover and disabled states.",
    "designSystemCompliance": "Uses the brand primary color and the 8px spacing scale.",
    "recommendationSummary": "Build on the shared Button primitive.",
    "complexity_analysis": {
        "level": "simple",
        "reasoning": "Two child elements and a single color.",
        "estimated_hours": 4,
        "confidence_score": 90,
    },
}


class FakeReasoningEngine(ReasoningEngine):
    """Reasoning engine that records prompts and answers from a script."""

    def __init__(
        self,
        payload: Optional[dict] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.payload = payload or ANALYSIS_PAYLOAD
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    @property
    def engine_name(self) -> str:
        return "fake"

    async def analyze(self, prompt: str) -> ReasoningAnalysis:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ReasoningAnalysis.model_validate(self.payload)


@pytest.fixture
def write_template(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a document under a temporary templates root."""
    root = tmp_path / "templates"
    root.mkdir()

    def _write(relative: str, text: str) -> Path:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def empty_resolver(tmp_path: Path) -> TemplateResolver:
    """Resolver over a directory with no templates at all."""
    root = tmp_path / "empty-templates"
    root.mkdir()
    return TemplateResolver(templates_dir=root)


@pytest.fixture
def resolver() -> TemplateResolver:
    """Resolver over the shipped template tree."""
    return TemplateResolver(templates_dir=SHIPPED_TEMPLATES)


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


@pytest.fixture
def compiler() -> ReasoningPromptCompiler:
    """Compiler over the shipped prompt definitions."""
    return ReasoningPromptCompiler(prompts_dir=SHIPPED_PROMPTS)


@pytest.fixture
def memory_cache() -> InMemoryCacheRepository:
    return InMemoryCacheRepository()


@pytest.fixture
def reasoning_engine() -> FakeReasoningEngine:
    return FakeReasoningEngine()


@pytest.fixture
def failing_engine() -> FakeReasoningEngine:
    return FakeReasoningEngine(error=ReasoningError("HTTP 503"))


@pytest.fixture
def make_service(
    resolver: TemplateResolver,
    renderer: TemplateRenderer,
    compiler: ReasoningPromptCompiler,
    memory_cache: InMemoryCacheRepository,
) -> Callable[..., TicketGenerationService]:
    """Build a generation service over the shipped resources; override any collaborator."""

    def _make(**overrides) -> TicketGenerationService:
        options = {
            "resolver": resolver,
            "renderer": renderer,
            "compiler": compiler,
            "cache_store": memory_cache,
        }
        options.update(overrides)
        return TicketGenerationService(**options)

    return _make


@pytest.fixture
def login_button_request() -> GenerationRequest:
    """Jira component request for a small button."""
    return GenerationRequest(
        document_type="component",
        platform="jira",
        tech_stack=["React", "TypeScript", "Jest"],
        component_context={
            "id": "12:34",
            "name": "LoginButton",
            "type": "COMPONENT",
            "url": "https://www.figma.com/file/abc?node-id=12-34",
            "children": [
                {"id": "12:35", "name": "Label", "type": "TEXT", "characters": "Sign in"},
                {"id": "12:36", "name": "Icon", "type": "VECTOR"},
            ],
            "fills": [{"type": "SOLID", "color": {"r": 0, "g": 0.4, "b": 1}}],
        },
    )


@pytest.fixture
def unknown_platform_request() -> GenerationRequest:
    return GenerationRequest(
        document_type="component",
        platform="zzz",
        tech_stack=[],
        component_context={"name": "Widget"},
        strategy_hint="template",
    )


@pytest.fixture
def analysis_payload() -> dict:
    """A complete reasoning engine answer."""
    return dict(ANALYSIS_PAYLOAD)


@pytest.fixture
def make_engine() -> Callable[..., FakeReasoningEngine]:
    return FakeReasoningEngine
