"""
System-wide constants for ticketforge.
"""

from enum import Enum
from typing import NamedTuple


# =============================================================================
# Enums
# =============================================================================


class ResolutionScope(str, Enum):
    """Template lookup tiers, most specific first."""

    PLATFORM = "platform"
    TECH_STACK = "tech_stack"
    CUSTOM = "custom"
    BUILT_IN = "built_in"


class Platform(str, Enum):
    """Ticket and documentation platforms with dedicated labels."""

    JIRA = "jira"
    CONFLUENCE = "confluence"
    WIKI = "wiki"
    GITHUB = "github"
    GITLAB = "gitlab"
    LINEAR = "linear"
    NOTION = "notion"
    AZURE_DEVOPS = "azure-devops"
    TRELLO = "trello"
    ASANA = "asana"
    GENERIC = "generic"

    @classmethod
    def from_value(cls, value: object) -> "Platform":
        """Map any platform string onto the enum, defaulting to GENERIC."""
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.GENERIC


class GenerationStrategy(str, Enum):
    """Strategy reported on a generation result."""

    AI = "ai"
    TEMPLATE = "template"
    EMERGENCY = "emergency"


class StrategyHint(str, Enum):
    """What the caller asked for."""

    AUTO = "auto"
    AI = "ai"
    TEMPLATE = "template"


# Older client names for strategies
LEGACY_STRATEGY_ALIASES = {
    "ai-powered": StrategyHint.AI,
    "enhanced": StrategyHint.AI,
    "template-guided-ai": StrategyHint.AI,
    "ai-template": StrategyHint.AI,
    "direct": StrategyHint.TEMPLATE,
    "legacy": StrategyHint.TEMPLATE,
    "universal-template": StrategyHint.TEMPLATE,
}


class Complexity(str, Enum):
    """Implementation complexity levels."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


# =============================================================================
# Document types
# =============================================================================

# Requested document type -> template file stem
DOCUMENT_TYPE_FILES = {
    "component": "comp",
    "comp": "comp",
    "feature": "feature",
    "code": "code",
    "service": "service",
    "wiki": "wiki",
    "authoring": "wiki",
}

DEFAULT_STACK = "custom"

DEFAULT_SECTIONS = [
    "title",
    "summary",
    "requirements",
    "design_context",
    "acceptance_criteria",
    "testing_strategy",
    "ai_analysis",
]


# =============================================================================
# Sizing thresholds
# =============================================================================


class SizeTier(NamedTuple):
    """Upper bound in hours and the bucket it maps to."""

    max_hours: float
    label: str
    story_points: int


# Checked in order; the first tier whose max_hours covers the estimate wins
SIZE_TIERS = (
    SizeTier(4, "S", 3),
    SizeTier(8, "M", 5),
    SizeTier(16, "L", 8),
)
OVERSIZE_TIER = SizeTier(float("inf"), "XL", 13)

COMPLEXITY_HOURS = {
    Complexity.SIMPLE: 4,
    Complexity.MEDIUM: 8,
    Complexity.COMPLEX: 16,
}
AEM_HOURS_MULTIPLIER = 1.5

COMPLEXITY_PRIORITY = {
    Complexity.SIMPLE: "Low",
    Complexity.MEDIUM: "Medium",
    Complexity.COMPLEX: "High",
}

# Complexity score: each signal adds points, the total picks the level
CHILD_COUNT_THRESHOLDS = ((5, 2), (2, 1))  # (more than N children, points)
COLOR_COUNT_THRESHOLDS = ((8, 2), (4, 1))
COMPLEX_SCORE = 4
MEDIUM_SCORE = 2

# Context confidence, percent
BASE_CONFIDENCE = 60
SCREENSHOT_CONFIDENCE_BONUS = 20
COLORS_CONFIDENCE_BONUS = 5
CHILDREN_CONFIDENCE_BONUS = 10
MAX_CONFIDENCE = 95

# Result confidence per strategy, 0..1
AI_DEFAULT_CONFIDENCE = 0.8
TEMPLATE_CONFIDENCE = 0.6
FALLBACK_CONFIDENCE = 0.5
EMERGENCY_CONFIDENCE = 0.2

# Design tree walking
MAX_TREE_DEPTH = 8
MAX_LISTED_CHILDREN = 10
FINGERPRINT_DEPTH = 3


def size_tier_for_hours(hours: float) -> SizeTier:
    """Bucket an hours estimate into its size tier."""
    for tier in SIZE_TIERS:
        if hours <= tier.max_hours:
            return tier
    return OVERSIZE_TIER


# =============================================================================
# Cache
# =============================================================================

CACHE_TTL_SECONDS = 7200  # 2 hours
CACHE_KEY_PREFIX = "ticketforge"
TICKET_CACHE_KEY = CACHE_KEY_PREFIX + ":ticket:{digest}:{strategy}"


# =============================================================================
# Platform labels
# =============================================================================

PLATFORM_ICONS = {
    Platform.JIRA: "\U0001f3ab",
    Platform.CONFLUENCE: "\U0001f4da",
    Platform.WIKI: "\U0001f4da",
    Platform.GITHUB: "\U0001f419",
    Platform.GITLAB: "\U0001f98a",
    Platform.LINEAR: "\U0001f4d0",
    Platform.NOTION: "\U0001f4dd",
    Platform.AZURE_DEVOPS: "\U0001f537",
    Platform.TRELLO: "\U0001f4cb",
    Platform.ASANA: "✅",
    Platform.GENERIC: "\U0001f4c4",
}

PLATFORM_TYPE_PREFIXES = {
    Platform.JIRA: "[FE]",
    Platform.GITHUB: "feat:",
    Platform.GITLAB: "feat:",
    Platform.LINEAR: "FE -",
    Platform.AZURE_DEVOPS: "[User Story]",
    Platform.GENERIC: "",
}

SECTION_ICONS = {
    "title": "\U0001f3af",
    "summary": "\U0001f4cb",
    "requirements": "\U0001f527",
    "design_context": "\U0001f3a8",
    "acceptance_criteria": "✅",
    "technical_implementation": "⚙️",
    "testing_strategy": "\U0001f9ea",
    "complexity_analysis": "\U0001f4ca",
    "subtasks": "\U0001f4dd",
    "ai_assistant_integration": "\U0001f916",
    "ai_analysis": "\U0001f9e0",
}

TESTING_FRAMEWORKS = {
    "jest-rtl": "Jest + React Testing Library",
    "jest": "Jest",
    "vitest": "Vitest",
    "cypress": "Cypress",
    "playwright": "Playwright",
    "junit": "JUnit",
    "pytest": "pytest",
}

ACCESSIBILITY_LEVELS = {
    "wcag-a": "WCAG 2.1 A",
    "wcag-aa": "WCAG 2.1 AA",
    "wcag-aaa": "WCAG 2.1 AAA",
}
