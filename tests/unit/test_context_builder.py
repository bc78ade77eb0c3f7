"""
Tests for render context construction.
"""

import pytest

from ticketforge.core.constants import Complexity, size_tier_for_hours
from ticketforge.domain.generation import GenerationRequest
from ticketforge.services.context_builder import (
    ContextBuilder,
    assess_complexity,
    classify_component,
    context_confidence,
    estimate_hours,
    master_component_name,
)


@pytest.fixture
def builder() -> ContextBuilder:
    return ContextBuilder()


class TestHeuristics:
    """Tests for classification and sizing rules."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("LoginButton", "Button"),
            ("Primary CTA", "Button"),
            ("ConfirmDialog", "Modal"),
            ("SignupForm", "Form"),
            ("Search Field", "Input"),
            ("Main Nav", "Navigation"),
            ("ProductCard", "Card"),
            ("UserAvatar", "Image"),
            ("Frame 42", "UI Component"),
            ("", "UI Component"),
        ],
    )
    def test_classify_component(self, name, expected):
        assert classify_component(name) == expected

    def test_assess_complexity(self):
        assert assess_complexity(child_count=0, color_count=0) == Complexity.SIMPLE
        assert assess_complexity(child_count=3, color_count=0) == Complexity.SIMPLE
        assert assess_complexity(child_count=6, color_count=0) == Complexity.MEDIUM
        assert assess_complexity(child_count=3, color_count=5) == Complexity.MEDIUM
        assert assess_complexity(child_count=6, color_count=9) == Complexity.COMPLEX

    def test_estimate_hours(self):
        assert estimate_hours(Complexity.SIMPLE, ["React"]) == 4
        assert estimate_hours(Complexity.MEDIUM, []) == 8
        assert estimate_hours(Complexity.COMPLEX, ["aem", "HTL"]) == 24

    @pytest.mark.parametrize(
        "hours,label,points",
        [(1, "S", 3), (4, "S", 3), (6, "M", 5), (8, "M", 5), (12, "L", 8), (16, "L", 8), (24, "XL", 13)],
    )
    def test_size_tiers(self, hours, label, points):
        tier = size_tier_for_hours(hours)

        assert (tier.label, tier.story_points) == (label, points)

    def test_context_confidence(self):
        assert context_confidence(has_screenshot=False, color_count=0, child_count=0) == 60
        assert context_confidence(has_screenshot=True, color_count=3, child_count=2) == 95
        assert context_confidence(has_screenshot=False, color_count=1, child_count=1) == 75

    def test_master_component_follows_one_level(self):
        node = {"mainComponent": {"name": "BaseButton", "mainComponent": {"name": "Root"}}}

        assert master_component_name(node) == "BaseButton"
        assert master_component_name({"master_component": " Chip "}) == "Chip"
        assert master_component_name({}) is None


class TestContextBuilder:
    """Tests for ContextBuilder.build."""

    def test_login_button(self, builder, login_button_request):
        context = builder.build(login_button_request)

        assert context.design["component_name"] == "LoginButton"
        assert context.design["component_type"] == "Button"
        assert context.design["children"] == ["Label", "Icon"]
        assert context.design["child_count"] == 2
        assert context.design["descendant_count"] == 2
        assert context.design["colors"] == ["#0066ff"]
        assert context.design["text_content"] == ["Sign in"]
        assert context.calculated["complexity"] == "simple"
        assert context.calculated["story_points"] == 3
        assert context.calculated["priority"] == "Low"
        assert context.calculated["confidence"] == 75
        assert context.calculated["similar_components"] == ["PrimaryButton", "IconButton", "LinkButton"]
        assert context.project["tech_stack"] == ["React", "TypeScript", "Jest"]
        assert context.namespace("structural")["children"] == ["Label", "Icon"]

    def test_minimal_request(self, builder):
        context = builder.build(GenerationRequest())

        assert context.component_name == "Component"
        assert context.design["component_type"] == "UI Component"
        assert context.namespace("structural") is None
        assert "No design reference link" in context.calculated["risk_factors"]

    def test_aem_stack_scales_estimate(self, builder):
        context = builder.build(
            GenerationRequest(tech_stack="AEM, HTL", component_context={"name": "Hero"})
        )

        assert context.calculated["hours"] == 6
        assert context.calculated["size_tier"] == "M"
        assert "AEM authoring integration" in context.calculated["risk_factors"]

    def test_cyclic_tree_terminates(self, builder):
        request = GenerationRequest(component_context={"id": "1", "name": "Loop", "children": []})
        node = request.component_context
        node["children"].append(node)

        context = builder.build(request)

        assert context.design["descendant_count"] == 0

    def test_deep_tree_is_bounded(self, builder):
        root: dict = {"id": "0", "name": "Root"}
        current = root
        for depth in range(1, 40):
            child = {"id": str(depth), "name": f"Level{depth}"}
            current["children"] = [child]
            current = child

        context = builder.build(GenerationRequest(component_context=root))

        assert context.design["descendant_count"] == 8

    def test_overrides_merge_into_namespaces(self):
        builder = ContextBuilder(organization={"name": "Acme"})
        request = GenerationRequest(
            component_context={"name": "Card"},
            project={"name": "Storefront"},
            team={"name": "Checkout"},
        )

        context = builder.build(request)

        assert context.org["name"] == "Acme"
        assert context.team["name"] == "Checkout"
        assert context.project["name"] == "Storefront"

    def test_input_is_not_modified(self, builder, login_button_request):
        before = login_button_request.model_dump()

        builder.build(login_button_request)

        assert login_button_request.model_dump() == before
