"""
Reasoning prompt definition domain model.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PromptDefinition(BaseModel):
    """
    Instruction template for the external reasoning engine.

    Loaded from ``<prompts_dir>/<file>.yml``. Lives in its own namespace and
    cache; never merged with template documents.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    prompt_id: str
    version: str = "1.0.0"
    purpose: str = ""
    last_updated: Optional[str] = None
    prompt_template: str = Field(..., min_length=1)
    defaults: dict[str, Any] = Field(
        default_factory=dict, description="Fallback value per dotted path"
    )
    response_fields: list[str] = Field(default_factory=list)

    @field_validator("version", "last_updated", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> Any:
        if v is not None and not isinstance(v, str):
            return str(v)
        return v


class CompiledPrompt(BaseModel):
    """Instruction text ready to send, plus the definition it came from."""

    prompt_id: str
    version: str
    purpose: str
    text: str
