"""
Template renderer - turns a template document plus render context into ticket text.
"""

import re
from typing import Any, Callable, Optional, Union

from ticketforge.core.constants import (
    ACCESSIBILITY_LEVELS,
    COMPLEXITY_HOURS,
    COMPLEXITY_PRIORITY,
    PLATFORM_ICONS,
    PLATFORM_TYPE_PREFIXES,
    SECTION_ICONS,
    TESTING_FRAMEWORKS,
    Complexity,
    Platform,
    size_tier_for_hours,
)
from ticketforge.core.logging import get_logger
from ticketforge.domain.context import RenderContext
from ticketforge.domain.template import ResolvedTemplate, TemplateDocument
from ticketforge.templates.expressions import MISSING, lookup_path, parse_expression, stringify

logger = get_logger(__name__)

TOKEN_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

SectionFormatter = Callable[[TemplateDocument, RenderContext], str]


class TemplateRenderer:
    """
    Renders template documents.

    Direct documents substitute their ``content`` block in place. Sectioned
    documents run one formatter per entry of ``output_format.sections`` and
    join the results without substitution. Tokens that cannot be resolved are
    left in the output untouched.
    """

    def __init__(self, max_variable_depth: int = 3) -> None:
        self.max_variable_depth = max_variable_depth
        self._formatters: dict[str, SectionFormatter] = {
            "title": self._format_title,
            "summary": self._format_summary,
            "requirements": self._format_requirements,
            "design_context": self._format_design_context,
            "acceptance_criteria": self._format_acceptance_criteria,
            "technical_implementation": self._format_technical_implementation,
            "testing_strategy": self._format_testing_strategy,
            "complexity_analysis": self._format_complexity_analysis,
            "subtasks": self._format_subtasks,
            "ai_assistant_integration": self._format_ai_assistant_integration,
            "ai_analysis": self._format_ai_analysis,
        }

    @property
    def section_names(self) -> list[str]:
        return list(self._formatters)

    def render(
        self,
        template: Union[ResolvedTemplate, TemplateDocument],
        context: RenderContext,
    ) -> str:
        """
        Render a document against a context.

        Args:
            template: Resolved template or bare document
            context: Per-request values

        Returns:
            Rendered text
        """
        document = template.document if isinstance(template, ResolvedTemplate) else template
        has_analysis = bool(context.namespace("ai"))

        if document.is_direct:
            output = self.substitute(document.content or "", document, context)
            if has_analysis and "ai." not in (document.content or ""):
                output = output.rstrip() + "\n\n" + self._format_ai_analysis(document, context)
            return output.rstrip() + "\n"

        sections = list(document.output_format.sections)
        if has_analysis and "ai_analysis" not in sections:
            sections.append("ai_analysis")

        parts = []
        for name in sections:
            formatter = self._formatters.get(name)
            if formatter is None:
                logger.debug("Unknown section rendered as placeholder", section=name)
                title = str(name).replace("_", " ").upper()
                parts.append(self._section(str(name), title, "", document))
                continue
            rendered = formatter(document, context)
            if rendered:
                parts.append(rendered)

        # Context values are inserted verbatim, never read back as tokens
        return "\n".join(parts).rstrip() + "\n"

    # =========================================================================
    # Substitution
    # =========================================================================

    def substitute(
        self,
        text: str,
        document: TemplateDocument,
        context: RenderContext,
        depth: int = 0,
    ) -> str:
        """Replace ``{{ ... }}`` tokens; unresolved tokens stay as written."""

        def replace(match: re.Match) -> str:
            expression = parse_expression(match.group(1))
            if expression is None:
                return match.group(0)
            value = expression.evaluate(
                lambda path: self.resolve_path(path, document, context, depth)
            )
            if value is MISSING:
                return match.group(0)
            return stringify(value)

        return TOKEN_RE.sub(replace, text)

    def resolve_path(
        self,
        path: str,
        document: TemplateDocument,
        context: RenderContext,
        depth: int = 0,
    ) -> Any:
        """Look a dotted path up in the context namespaces, then in document variables."""
        head, _, rest = path.partition(".")
        namespace = context.namespace(head)
        if namespace is not None:
            return lookup_path(namespace, rest) if rest else namespace

        if head == "variables" and rest:
            value = lookup_path(document.variables, rest)
        else:
            value = lookup_path(document.variables, path)

        if isinstance(value, str) and "{{" in value and depth < self.max_variable_depth:
            value = self.substitute(value, document, context, depth + 1)
        return value

    # =========================================================================
    # Section helpers
    # =========================================================================

    @staticmethod
    def _get(context: RenderContext, path: str, default: Any = None) -> Any:
        head, _, rest = path.partition(".")
        value = lookup_path(context.namespace(head) or {}, rest)
        if value is MISSING or value is None or value == "":
            return default
        return value

    @staticmethod
    def _section(name: str, title: str, body: str, document: TemplateDocument) -> str:
        icon = SECTION_ICONS.get(name, "")
        heading = f"## {icon} {title}" if document.use_icons and icon else f"## {title}"
        text = f"{heading}\n\n{body.strip()}\n"
        if document.use_markers:
            text = f"<!-- START: {name} -->\n{text}<!-- END: {name} -->\n"
        return text

    @staticmethod
    def _bullets(items: list[Any]) -> str:
        return "\n".join(f"- {stringify(item)}" for item in items if stringify(item))

    def _platform(self, document: TemplateDocument, context: RenderContext) -> Platform:
        return Platform.from_value(document.platform or self._get(context, "project.platform", ""))

    def _complexity(self, context: RenderContext) -> Complexity:
        try:
            return Complexity(str(self._get(context, "calculated.complexity", "medium")).lower())
        except ValueError:
            return Complexity.MEDIUM

    def _hours(self, context: RenderContext) -> float:
        hours = self._get(context, "calculated.hours")
        try:
            return float(hours)
        except (TypeError, ValueError):
            return float(COMPLEXITY_HOURS[self._complexity(context)])

    def _stack_label(self, context: RenderContext) -> str:
        stack = self._get(context, "project.tech_stack", [])
        return stringify(stack) or "the project stack"

    # =========================================================================
    # Section formatters
    # =========================================================================

    def _format_title(self, document: TemplateDocument, context: RenderContext) -> str:
        platform = self._platform(document, context)
        name = self._get(context, "design.component_name", "Component")
        component_type = self._get(context, "design.component_type", "UI Component")

        parts = []
        if document.use_icons:
            parts.append(PLATFORM_ICONS.get(platform, PLATFORM_ICONS[Platform.GENERIC]))
        prefix = PLATFORM_TYPE_PREFIXES.get(platform, PLATFORM_TYPE_PREFIXES[Platform.GENERIC])
        if prefix:
            parts.append(prefix)
        parts.append(f"{name} ({component_type})")

        title = f"# {' '.join(parts)}\n"
        if document.use_markers:
            title = f"<!-- START: title -->\n{title}<!-- END: title -->\n"
        return title

    def _format_summary(self, document: TemplateDocument, context: RenderContext) -> str:
        complexity = self._complexity(context)
        hours = self._hours(context)
        tier = size_tier_for_hours(hours)
        priority = self._get(context, "calculated.priority", COMPLEXITY_PRIORITY[complexity])
        confidence = self._get(context, "calculated.confidence")

        lines = [
            f"**Component:** {self._get(context, 'design.component_name', 'Component')}",
            f"**Type:** {self._get(context, 'design.component_type', 'UI Component')}",
            f"**Ticket Type:** {document.output_format.ticket_type.title()}",
            f"**Priority:** {priority}",
            f"**Story Points:** {tier.story_points}",
            f"**Size:** {tier.label} ({stringify(hours)}h estimated)",
        ]
        if confidence is not None:
            lines.append(f"**Confidence:** {stringify(confidence)}%")

        description = self._get(context, "design.description")
        body = "\n".join(lines)
        if description:
            body = f"{description}\n\n{body}"
        return self._section("summary", "Summary", body, document)

    def _format_requirements(self, document: TemplateDocument, context: RenderContext) -> str:
        name = self._get(context, "design.component_name", "Component")
        standards = document.team_standards
        accessibility = ACCESSIBILITY_LEVELS.get(
            standards.accessibility_level, standards.accessibility_level
        )

        items = [
            f"Implement `{name}` as a reusable component using {self._stack_label(context)}",
            "Match the design specification for layout, spacing and typography",
            f"Meet {accessibility} accessibility requirements",
            "Support responsive behaviour across supported breakpoints",
            f"Follow the team code style ({standards.code_style})",
        ]
        children = self._get(context, "design.children", [])
        if children:
            items.append(f"Compose the child elements: {stringify(children)}")
        dependency = self._get(context, "design.master_component")
        if dependency:
            items.append(f"Reuse the existing `{dependency}` component")

        return self._section("requirements", "Requirements", self._bullets(items), document)

    def _format_design_context(self, document: TemplateDocument, context: RenderContext) -> str:
        rows = []
        url = self._get(context, "design.url")
        if url:
            rows.append(f"Design reference: {url}")
        node_id = self._get(context, "design.node_id")
        if node_id:
            rows.append(f"Node: `{node_id}`")
        width = self._get(context, "design.width")
        height = self._get(context, "design.height")
        if width and height:
            rows.append(f"Dimensions: {stringify(width)} x {stringify(height)}")
        colors = self._get(context, "design.colors", [])
        if colors:
            rows.append(f"Colors: {stringify(colors)}")
        typography = self._get(context, "design.typography", [])
        if typography:
            rows.append(f"Typography: {stringify(typography)}")
        text = self._get(context, "design.text_content", [])
        if text:
            rows.append(f"Text content: {stringify(text)}")
        child_count = self._get(context, "design.child_count", 0)
        rows.append(f"Child elements: {stringify(child_count)}")

        return self._section("design_context", "Design Context", self._bullets(rows), document)

    def _format_acceptance_criteria(self, document: TemplateDocument, context: RenderContext) -> str:
        name = self._get(context, "design.component_name", "Component")
        accessibility = ACCESSIBILITY_LEVELS.get(
            document.team_standards.accessibility_level,
            document.team_standards.accessibility_level,
        )
        items = [
            f"`{name}` matches the design reference",
            "All interactive states (hover, focus, active, disabled) are implemented",
            f"Passes {accessibility} checks",
            "Renders correctly at every supported breakpoint",
            "Unit tests cover the public behaviour",
            "Code review approved",
        ]
        body = "\n".join(f"- [ ] {item}" for item in items)
        return self._section("acceptance_criteria", "Acceptance Criteria", body, document)

    def _format_technical_implementation(
        self, document: TemplateDocument, context: RenderContext
    ) -> str:
        standards = document.team_standards
        items = [
            f"Stack: {self._stack_label(context)}",
            f"Code style: {standards.code_style}",
            f"Documentation: {standards.documentation_format}",
            f"Review process: {standards.review_process}",
        ]
        component_type = self._get(context, "design.component_type")
        if component_type:
            items.append(f"Pattern: {component_type}")
        similar = self._get(context, "calculated.similar_components", [])
        if similar:
            items.append(f"Related components: {stringify(similar[:3])}")
        return self._section(
            "technical_implementation", "Technical Implementation", self._bullets(items), document
        )

    def _format_testing_strategy(self, document: TemplateDocument, context: RenderContext) -> str:
        framework_key = document.team_standards.testing_framework
        framework = TESTING_FRAMEWORKS.get(framework_key, framework_key)
        name = self._get(context, "design.component_name", "Component")
        items = [
            f"Unit tests with {framework}",
            "Accessibility assertions for roles, labels and keyboard navigation",
            "Visual regression snapshot of each state",
        ]
        if document.customization.generate_test_files:
            items.append(f"Create a `{name}.test` file next to the component")
        return self._section("testing_strategy", "Testing Strategy", self._bullets(items), document)

    def _format_complexity_analysis(self, document: TemplateDocument, context: RenderContext) -> str:
        complexity = self._complexity(context)
        hours = self._hours(context)
        tier = size_tier_for_hours(hours)
        rows = [
            f"Complexity: {complexity.value}",
            f"Estimated effort: {stringify(hours)} hours",
            f"Size tier: {tier.label} ({tier.story_points} points)",
        ]
        if document.customization.include_risk_assessment:
            risks = self._get(context, "calculated.risk_factors", [])
            rows.append(f"Risks: {stringify(risks) or 'none identified'}")
        return self._section(
            "complexity_analysis", "Complexity Analysis", self._bullets(rows), document
        )

    def _format_subtasks(self, document: TemplateDocument, context: RenderContext) -> str:
        if not document.customization.include_subtasks:
            return ""
        hours = self._hours(context)
        # Share of the estimate per step
        steps = [
            ("Set up component scaffolding", 0.1),
            ("Implement layout and styling", 0.4),
            ("Wire up states and interactions", 0.2),
            ("Write tests", 0.2),
            ("Documentation and review fixes", 0.1),
        ]
        body = "\n".join(
            f"{index}. {label} ({stringify(round(hours * share, 1))}h)"
            for index, (label, share) in enumerate(steps, start=1)
        )
        return self._section("subtasks", "Subtasks", body, document)

    def _format_ai_assistant_integration(
        self, document: TemplateDocument, context: RenderContext
    ) -> str:
        name = self._get(context, "design.component_name", "Component")
        framework_key = document.team_standards.testing_framework
        body = (
            f"When generating code for `{name}` with an assistant, provide:\n\n"
            + self._bullets(
                [
                    f"Stack: {self._stack_label(context)}",
                    f"Testing: {TESTING_FRAMEWORKS.get(framework_key, framework_key)}",
                    f"Accessibility: {document.team_standards.accessibility_level}",
                    f"Design reference: {self._get(context, 'design.url', 'not provided')}",
                ]
            )
        )
        return self._section(
            "ai_assistant_integration", "AI Assistant Integration", body, document
        )

    def _format_ai_analysis(self, document: TemplateDocument, context: RenderContext) -> str:
        analysis = context.namespace("ai")
        if not analysis:
            return ""

        blocks = []
        for key, label in (
            ("visual_understanding", "Visual Understanding"),
            ("component_analysis", "Component Analysis"),
            ("design_system_compliance", "Design System Compliance"),
            ("recommendation_summary", "Recommendations"),
        ):
            value = analysis.get(key)
            if value:
                blocks.append(f"**{label}:** {stringify(value)}")

        complexity: Optional[dict[str, Any]] = analysis.get("complexity")
        if complexity and complexity.get("reasoning"):
            blocks.append(f"**Complexity Reasoning:** {complexity['reasoning']}")

        if not blocks:
            return ""
        return self._section("ai_analysis", "AI Analysis", "\n\n".join(blocks), document)
