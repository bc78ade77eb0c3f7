"""
Render context domain model.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Lookup priority for namespaced tokens; document variables come after these
NAMESPACE_PRIORITY = ("design", "project", "calculated", "org", "team")

NAMESPACE_ALIASES = {
    "figma": "design",
    "source": "design",
    "organization": "org",
    "computed": "calculated",
}


class RenderContext(BaseModel):
    """
    Namespaced values supplied per request.

    Read-only while rendering. ``extras`` carries namespaces outside the
    fixed five, e.g. ``structural`` (child elements) or ``ai`` (reasoning
    output).
    """

    model_config = ConfigDict(frozen=True)

    design: dict[str, Any] = Field(default_factory=dict)
    project: dict[str, Any] = Field(default_factory=dict)
    calculated: dict[str, Any] = Field(default_factory=dict)
    org: dict[str, Any] = Field(default_factory=dict)
    team: dict[str, Any] = Field(default_factory=dict)
    extras: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def namespace(self, name: str) -> Optional[dict[str, Any]]:
        """Return the sub-map for a namespace name or alias, or None."""
        name = NAMESPACE_ALIASES.get(name, name)
        if name in NAMESPACE_PRIORITY:
            return getattr(self, name)
        return self.extras.get(name)

    def as_mapping(self) -> dict[str, Any]:
        """Flatten into one dict keyed by namespace, fixed namespaces winning."""
        merged: dict[str, Any] = dict(self.extras)
        for name in NAMESPACE_PRIORITY:
            merged[name] = getattr(self, name)
        for alias, target in NAMESPACE_ALIASES.items():
            merged.setdefault(alias, merged[target])
        return merged

    def with_namespace(self, name: str, values: dict[str, Any]) -> "RenderContext":
        """Copy of this context with one extra namespace added or replaced."""
        return self.model_copy(update={"extras": {**self.extras, name: values}})

    @property
    def component_name(self) -> str:
        return str(self.design.get("component_name") or "Component")
