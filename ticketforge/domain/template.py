"""
Template document domain model.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ticketforge.core.constants import ResolutionScope
from ticketforge.core.exceptions import TemplateValidationError


class TeamStandards(BaseModel):
    """Engineering conventions quoted by the section formatters."""

    model_config = ConfigDict(extra="allow", frozen=True)

    testing_framework: str = "jest-rtl"
    accessibility_level: str = "wcag-aa"
    documentation_format: str = "markdown"
    code_style: str = "prettier"
    review_process: str = "standard"


class Formatting(BaseModel):
    """Presentation flags."""

    model_config = ConfigDict(extra="allow", frozen=True)

    use_emojis: bool = True
    include_links: bool = True
    include_code_snippets: bool = True


class OutputFormat(BaseModel):
    """Section layout of a rendered document."""

    model_config = ConfigDict(extra="allow", frozen=True)

    ticket_type: str = "task"
    sections: list[str]
    formatting: Formatting


class Customization(BaseModel):
    """Optional content switches."""

    model_config = ConfigDict(extra="allow", frozen=True)

    include_ai_context_markers: bool = False
    generate_test_files: bool = True
    include_risk_assessment: bool = True
    include_subtasks: bool = True


class TemplateDocument(BaseModel):
    """
    A parsed, validated template.

    Either ``content`` holds one literal block rendered in place, or
    ``output_format.sections`` lists the section formatters to run.
    Keys outside the recognized set are kept but never read.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    template_id: str
    version: str
    platform: Optional[str] = None
    document_type: Optional[str] = None
    description: Optional[str] = None
    inherits_from: Optional[str] = None
    variables: dict[str, Any]
    team_standards: TeamStandards = Field(default_factory=TeamStandards)
    output_format: OutputFormat
    customization: Customization = Field(default_factory=Customization)
    content: Optional[str] = None

    @field_validator("template_id", "version", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> Any:
        # The document loader turns "1.0" into a float
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def is_direct(self) -> bool:
        """True when the document renders a literal content block."""
        return isinstance(self.content, str) and bool(self.content.strip())

    @property
    def use_icons(self) -> bool:
        return self.output_format.formatting.use_emojis

    @property
    def use_markers(self) -> bool:
        return self.customization.include_ai_context_markers

    @classmethod
    def from_mapping(cls, data: Any, source: str) -> "TemplateDocument":
        """
        Validate raw parsed data against the minimal template schema.

        Args:
            data: Output of the document loader
            source: Path or label used in error details

        Raises:
            TemplateValidationError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise TemplateValidationError(source, ["document is not a mapping"])
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise TemplateValidationError(source, errors) from e


class ResolvedTemplate(BaseModel):
    """A template document plus where it came from."""

    model_config = ConfigDict(frozen=True)

    document: TemplateDocument
    scope: ResolutionScope
    source: str = Field(..., description="File path, or 'built-in'")
    cache_key: str
    platform: str
    document_type: str
    tech_stack: str
    resolved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def template_id(self) -> str:
        return self.document.template_id
