"""
Builds the render context for a generation request.

The component context is an opaque design node tree (id, name, type,
absoluteBoundingBox, characters, fills, children, mainComponent, ...). It is
only read, never modified, and walked with a depth limit and a visited set
because instance trees can point back at their masters.
"""

from typing import Any, Iterator, Optional

from ticketforge.core.constants import (
    AEM_HOURS_MULTIPLIER,
    BASE_CONFIDENCE,
    CHILD_COUNT_THRESHOLDS,
    CHILDREN_CONFIDENCE_BONUS,
    COLOR_COUNT_THRESHOLDS,
    COLORS_CONFIDENCE_BONUS,
    COMPLEX_SCORE,
    COMPLEXITY_HOURS,
    COMPLEXITY_PRIORITY,
    MAX_CONFIDENCE,
    MAX_LISTED_CHILDREN,
    MAX_TREE_DEPTH,
    MEDIUM_SCORE,
    SCREENSHOT_CONFIDENCE_BONUS,
    Complexity,
    size_tier_for_hours,
)
from ticketforge.core.logging import get_logger
from ticketforge.domain.context import RenderContext
from ticketforge.domain.generation import GenerationRequest

logger = get_logger(__name__)

# Checked in order; first keyword hit wins
COMPONENT_CATEGORIES: list[tuple[str, tuple[str, ...]]] = [
    ("Button", ("button", "btn", "cta")),
    ("Modal", ("modal", "dialog", "popup", "overlay")),
    ("Form", ("form", "login", "signup", "checkout")),
    ("Input", ("input", "field", "textbox", "select", "dropdown", "checkbox")),
    ("List", ("list", "table", "grid")),
    ("Navigation", ("nav", "menu", "breadcrumb", "tab", "sidebar")),
    ("Header", ("header", "topbar", "appbar")),
    ("Footer", ("footer",)),
    ("Card", ("card", "tile")),
    ("Image", ("image", "img", "avatar", "icon", "logo")),
]
DEFAULT_COMPONENT_CATEGORY = "UI Component"

# Existing components worth checking before building a new one
SIMILAR_COMPONENTS = {
    "Button": ["PrimaryButton", "IconButton", "LinkButton"],
    "Input": ["TextField", "SelectField", "TextArea"],
    "Card": ["ProductCard", "UserCard", "InfoCard"],
    "Modal": ["ConfirmDialog", "FormModal", "AlertDialog"],
    "Navigation": ["TopNavigation", "SideNavigation", "BreadcrumbNav"],
}
DEFAULT_SIMILAR_COMPONENTS = ["BaseComponent", "StandardComponent"]

DEFAULT_ORGANIZATION = {
    "name": "Organization",
    "design_system": "Design System",
}

DEFAULT_TEAM = {
    "name": "Frontend Team",
    "testing_framework": "jest-rtl",
    "accessibility_level": "wcag-aa",
}


def classify_component(name: str, node_type: str = "") -> str:
    """Keyword classification of a component; never fails."""
    haystack = f"{name} {node_type}".lower()
    for category, keywords in COMPONENT_CATEGORIES:
        if any(keyword in haystack for keyword in keywords):
            return category
    return DEFAULT_COMPONENT_CATEGORY


def assess_complexity(child_count: int, color_count: int) -> Complexity:
    score = 0
    for threshold, points in CHILD_COUNT_THRESHOLDS:
        if child_count > threshold:
            score += points
            break
    for threshold, points in COLOR_COUNT_THRESHOLDS:
        if color_count > threshold:
            score += points
            break

    if score >= COMPLEX_SCORE:
        return Complexity.COMPLEX
    if score >= MEDIUM_SCORE:
        return Complexity.MEDIUM
    return Complexity.SIMPLE


def estimate_hours(complexity: Complexity, tech_stack: list[str]) -> float:
    hours = float(COMPLEXITY_HOURS[complexity])
    if any("aem" in item.lower() for item in tech_stack):
        hours *= AEM_HOURS_MULTIPLIER
    return hours


def context_confidence(has_screenshot: bool, color_count: int, child_count: int) -> int:
    """Confidence in the derived context, as a percentage."""
    confidence = BASE_CONFIDENCE
    if has_screenshot:
        confidence += SCREENSHOT_CONFIDENCE_BONUS
    if color_count:
        confidence += COLORS_CONFIDENCE_BONUS
    if child_count:
        confidence += CHILDREN_CONFIDENCE_BONUS
    return min(confidence, MAX_CONFIDENCE)


def _color_hex(color: dict[str, Any]) -> Optional[str]:
    try:
        channels = [max(0, min(255, round(float(color[c]) * 255))) for c in ("r", "g", "b")]
    except (KeyError, TypeError, ValueError):
        return None
    return "#{:02x}{:02x}{:02x}".format(*channels)


def walk_nodes(root: dict[str, Any], max_depth: int = MAX_TREE_DEPTH) -> Iterator[dict[str, Any]]:
    """Depth-first walk that stops at max_depth and never revisits a node."""
    visited: set[int] = set()
    seen_ids: set[str] = set()
    stack: list[tuple[dict[str, Any], int]] = [(root, 0)]

    while stack:
        node, depth = stack.pop()
        node_id = node.get("id")
        if id(node) in visited or (node_id is not None and str(node_id) in seen_ids):
            continue
        visited.add(id(node))
        if node_id is not None:
            seen_ids.add(str(node_id))
        yield node

        if depth >= max_depth:
            continue
        children = node.get("children") or []
        if isinstance(children, list):
            for child in reversed(children):
                if isinstance(child, dict):
                    stack.append((child, depth + 1))


def master_component_name(node: dict[str, Any]) -> Optional[str]:
    """Name of the master an instance points at; only one level is followed."""
    master = node.get("mainComponent") or node.get("master_component") or node.get("masterComponent")
    if isinstance(master, dict):
        name = master.get("name")
        return str(name) if name else None
    if isinstance(master, str) and master.strip():
        return master.strip()
    return None


class ContextBuilder:
    """
    Derives the design, structural, project, calculated, org and team
    namespaces from a request.
    """

    def __init__(
        self,
        organization: Optional[dict[str, Any]] = None,
        team: Optional[dict[str, Any]] = None,
    ) -> None:
        self.organization = {**DEFAULT_ORGANIZATION, **(organization or {})}
        self.team = {**DEFAULT_TEAM, **(team or {})}

    def build(self, request: GenerationRequest) -> RenderContext:
        node = request.component_context
        name = request.component_name
        node_type = str(node.get("type") or "COMPONENT")

        direct_children = [c for c in (node.get("children") or []) if isinstance(c, dict)]
        child_names = [str(c.get("name")) for c in direct_children if c.get("name")]

        colors: list[str] = list(node.get("colors") or [])
        typography: list[str] = []
        text_content: list[str] = []
        descendants = 0
        for current in walk_nodes(node):
            if current is not node:
                descendants += 1
            for fill in current.get("fills") or []:
                if isinstance(fill, dict) and fill.get("type", "SOLID") == "SOLID":
                    hex_value = _color_hex(fill.get("color") or {})
                    if hex_value and hex_value not in colors:
                        colors.append(hex_value)
            style = current.get("style")
            if isinstance(style, dict) and style.get("fontFamily"):
                font = f"{style['fontFamily']} {style.get('fontSize', '')}".strip()
                if font not in typography:
                    typography.append(font)
            if current.get("type") == "TEXT" and current.get("characters"):
                text_content.append(str(current["characters"]))

        box = node.get("absoluteBoundingBox") or {}
        has_screenshot = bool(node.get("screenshot"))
        component_type = classify_component(name, node_type)

        design = {
            "component_name": name,
            "component_type": component_type,
            "node_type": node_type,
            "node_id": str(node.get("id") or ""),
            "url": str(node.get("url") or node.get("figma_url") or ""),
            "file_key": str(node.get("file_key") or node.get("fileKey") or ""),
            "description": str(node.get("description") or ""),
            "width": box.get("width"),
            "height": box.get("height"),
            "children": child_names[:MAX_LISTED_CHILDREN],
            "child_count": len(direct_children),
            "descendant_count": descendants,
            "colors": colors,
            "typography": typography,
            "text_content": text_content[:MAX_LISTED_CHILDREN],
            "master_component": master_component_name(node),
            "has_screenshot": has_screenshot,
        }

        complexity = assess_complexity(len(direct_children), len(colors))
        hours = estimate_hours(complexity, request.tech_stack)
        tier = size_tier_for_hours(hours)
        calculated = {
            "complexity": complexity.value,
            "hours": hours,
            "story_points": tier.story_points,
            "size_tier": tier.label,
            "priority": COMPLEXITY_PRIORITY[complexity],
            "confidence": context_confidence(has_screenshot, len(colors), len(direct_children)),
            "risk_factors": self._risk_factors(complexity, design, request.tech_stack),
            "similar_components": [
                similar
                for similar in SIMILAR_COMPONENTS.get(component_type, DEFAULT_SIMILAR_COMPONENTS)
                if similar != name
            ],
            "design_analysis": (
                f"{len(direct_children)} child elements, {len(colors)} colors, "
                f"{len(typography)} text styles"
            ),
        }

        project = {
            "name": "Component Library",
            "repository": "",
            **request.project,
            "tech_stack": list(request.tech_stack),
            "platform": request.platform,
            "document_type": request.document_type,
        }

        extras: dict[str, dict[str, Any]] = {}
        if child_names:
            extras["structural"] = {
                "children": child_names,
                "type": node_type,
                "child_count": len(direct_children),
            }

        logger.debug(
            "Render context built",
            component=name,
            component_type=component_type,
            complexity=complexity.value,
        )

        return RenderContext(
            design=design,
            project=project,
            calculated=calculated,
            org={**self.organization, **request.organization},
            team={**self.team, **request.team},
            extras=extras,
        )

    @staticmethod
    def _risk_factors(
        complexity: Complexity, design: dict[str, Any], tech_stack: list[str]
    ) -> list[str]:
        risks = []
        if complexity == Complexity.COMPLEX:
            risks.append("High structural complexity")
        if design["child_count"] > 10:
            risks.append("Large number of child elements")
        if not design["url"]:
            risks.append("No design reference link")
        if not design["has_screenshot"]:
            risks.append("No visual reference")
        if any("aem" in item.lower() for item in tech_stack):
            risks.append("AEM authoring integration")
        return risks
