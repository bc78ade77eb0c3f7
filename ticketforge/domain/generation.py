"""
Generation request/result domain models and the reasoning response contract.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketforge.core.constants import (
    LEGACY_STRATEGY_ALIASES,
    GenerationStrategy,
    ResolutionScope,
    StrategyHint,
)


class GenerationRequest(BaseModel):
    """One ticket generation request."""

    document_type: str = Field(default="component", description="Requested document type")
    platform: str = Field(default="jira", description="Target platform")
    tech_stack: list[str] = Field(default_factory=list, description="Technologies, primary first")
    component_context: dict[str, Any] = Field(
        default_factory=dict, description="Opaque design node tree (name, type, children, ...)"
    )
    strategy_hint: StrategyHint = Field(default=StrategyHint.AUTO)
    bypass_cache: bool = Field(default=False)

    # Optional overrides merged into the render context
    project: dict[str, Any] = Field(default_factory=dict)
    organization: dict[str, Any] = Field(default_factory=dict)
    team: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tech_stack", mode="before")
    @classmethod
    def split_tech_stack(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @field_validator("strategy_hint", mode="before")
    @classmethod
    def map_legacy_strategy(cls, v: Any) -> Any:
        if v is None:
            return StrategyHint.AUTO
        if isinstance(v, str):
            key = v.strip().lower()
            return LEGACY_STRATEGY_ALIASES.get(key, key)
        return v

    @property
    def component_name(self) -> str:
        name = self.component_context.get("name")
        return str(name).strip() if name and str(name).strip() else "Component"

    @property
    def component_type(self) -> str:
        return str(self.component_context.get("type") or "COMPONENT")


class GenerationMetadata(BaseModel):
    """How a result was produced."""

    model_config = ConfigDict(use_enum_values=True)

    strategy: GenerationStrategy
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_id: Optional[str] = Field(default=None, description="template_id used to render")
    resolution_scope: Optional[ResolutionScope] = None
    fallback_used: bool = False
    cached: bool = False
    prompt_id: Optional[str] = None
    error: Optional[str] = None
    trace: list[str] = Field(default_factory=list, description="Generation states visited")


class GenerationResult(BaseModel):
    """Rendered ticket plus metadata."""

    content: str
    metadata: GenerationMetadata


class ComplexityAssessment(BaseModel):
    """Optional complexity block in a reasoning response."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    level: Optional[str] = None
    reasoning: Optional[str] = None
    estimated_hours: Optional[float] = Field(default=None, alias="estimatedHours")
    confidence_score: Optional[float] = Field(default=None, alias="confidenceScore")


class ReasoningAnalysis(BaseModel):
    """Structured answer expected from the reasoning engine."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    visual_understanding: str = Field(..., alias="visualUnderstanding")
    component_analysis: str = Field(..., alias="componentAnalysis")
    design_system_compliance: str = Field(..., alias="designSystemCompliance")
    recommendation_summary: str = Field(..., alias="recommendationSummary")
    complexity_analysis: Optional[ComplexityAssessment] = None

    @property
    def confidence(self) -> Optional[float]:
        """Confidence reported by the engine, normalized to 0..1."""
        if self.complexity_analysis is None or self.complexity_analysis.confidence_score is None:
            return None
        score = float(self.complexity_analysis.confidence_score)
        if score > 1:
            score = score / 100
        return max(0.0, min(1.0, score))

    def as_namespace(self) -> dict[str, Any]:
        """Values exposed to templates under the ``ai`` namespace."""
        data: dict[str, Any] = {
            "visual_understanding": self.visual_understanding,
            "component_analysis": self.component_analysis,
            "design_system_compliance": self.design_system_compliance,
            "recommendation_summary": self.recommendation_summary,
        }
        if self.complexity_analysis is not None:
            data["complexity"] = self.complexity_analysis.model_dump(exclude_none=True)
        return data
