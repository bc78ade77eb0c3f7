"""
Tests for TemplateResolver.
"""

import pytest

from ticketforge.core.constants import ResolutionScope
from ticketforge.templates.resolver import (
    BUILT_IN_SOURCE,
    TemplateResolver,
    deep_merge,
    document_file_stem,
    primary_stack,
)

BASE = """
template_id: base
version: 1.0.0
variables:
  company: Acme
  component_name: "{{ design.component_name }}"
team_standards:
  testing_framework: vitest
output_format:
  ticket_type: task
  sections: [title, summary]
  formatting:
    use_emojis: true
    include_links: true
"""

PLATFORM_DOC = """
template_id: {template_id}
version: 2.0.0
variables:
  component_name: "{{{{ design.component_name }}}}"
output_format:
  sections: [title]
  formatting:
    use_emojis: false
"""


def _document(template_id: str) -> str:
    return PLATFORM_DOC.format(template_id=template_id)


class TestHelpers:
    """Tests for path helpers."""

    def test_primary_stack(self):
        assert primary_stack(["React", "TypeScript"]) == "react"
        assert primary_stack("Vue.js") == "vue-js"
        assert primary_stack([]) == "custom"
        assert primary_stack(None) == "custom"
        assert primary_stack(["  ", "Angular"]) == "angular"

    def test_document_file_stem(self):
        assert document_file_stem("component") == "comp"
        assert document_file_stem("Wiki") == "wiki"
        assert document_file_stem("release-notes") == "release-notes"

    def test_deep_merge_does_not_touch_inputs(self):
        base = {"a": {"x": 1, "y": 2}, "b": [1]}
        override = {"a": {"y": 3}, "b": [2]}

        merged = deep_merge(base, override)

        assert merged == {"a": {"x": 1, "y": 3}, "b": [2]}
        assert base == {"a": {"x": 1, "y": 2}, "b": [1]}


class TestResolutionOrder:
    """Tests for the tiered fallback chain."""

    @pytest.mark.asyncio
    async def test_platform_file_wins(self, write_template, tmp_path):
        write_template("platforms/jira/comp.yml", _document("jira-comp"))
        write_template("tech-stacks/react/comp.yml", _document("react-comp"))
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("jira", "component", ["React"])

        assert resolved.scope == ResolutionScope.PLATFORM
        assert resolved.template_id == "jira-comp"
        assert resolved.source.endswith("comp.yml")

    @pytest.mark.asyncio
    async def test_tech_stack_type_file_then_defaults(self, write_template, tmp_path):
        write_template("tech-stacks/react/defaults.yml", _document("react-defaults"))
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("linear", "component", ["React", "TypeScript"])
        assert resolved.scope == ResolutionScope.TECH_STACK
        assert resolved.template_id == "react-defaults"

        write_template("tech-stacks/react/comp.yml", _document("react-comp"))
        resolver.clear_cache()
        resolved = await resolver.resolve("linear", "component", ["React"])
        assert resolved.template_id == "react-comp"

    @pytest.mark.asyncio
    async def test_custom_tier(self, write_template, tmp_path):
        write_template("tech-stacks/custom/defaults.yml", _document("custom-defaults"))
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("zzz", "component", ["Svelte"])

        assert resolved.scope == ResolutionScope.CUSTOM
        assert resolved.template_id == "custom-defaults"

    @pytest.mark.asyncio
    async def test_built_in_when_nothing_matches(self, empty_resolver):
        resolved = await empty_resolver.resolve("zzz", "component", [])

        assert resolved.scope == ResolutionScope.BUILT_IN
        assert resolved.source == BUILT_IN_SOURCE
        assert resolved.template_id == "zzz-component-default"
        assert resolved.document.output_format.sections
        assert not resolved.document.is_direct

    @pytest.mark.asyncio
    async def test_missing_directory_still_resolves(self, tmp_path):
        resolver = TemplateResolver(templates_dir=tmp_path / "does-not-exist")

        resolved = await resolver.resolve("jira")

        assert resolved.scope == ResolutionScope.BUILT_IN

    @pytest.mark.asyncio
    async def test_hostile_inputs_cannot_escape_the_tree(self, empty_resolver):
        resolved = await empty_resolver.resolve("../../etc", "../passwd", ["../../x"])

        assert resolved.scope == ResolutionScope.BUILT_IN
        assert ".." not in resolved.cache_key


class TestDowngrades:
    """Invalid documents drop to the next tier."""

    @pytest.mark.asyncio
    async def test_missing_required_fields(self, write_template, tmp_path):
        write_template("platforms/jira/comp.yml", "template_id: broken\nversion: 1\n")
        write_template("tech-stacks/custom/defaults.yml", _document("custom-defaults"))
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("jira", "component")

        assert resolved.scope == ResolutionScope.CUSTOM
        assert resolved.template_id == "custom-defaults"

    @pytest.mark.asyncio
    async def test_garbage_file(self, write_template, tmp_path):
        write_template("platforms/jira/comp.yml", "\x00\x01 not a template at all")
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("jira", "component")

        assert resolved.scope == ResolutionScope.BUILT_IN

    @pytest.mark.asyncio
    async def test_sections_without_formatting_is_invalid(self, write_template, tmp_path):
        write_template(
            "platforms/github/comp.yml",
            "template_id: gh\nversion: 1\nvariables:\n  a: b\noutput_format:\n  sections: [title]\n",
        )
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("github", "component")

        assert resolved.scope == ResolutionScope.BUILT_IN


class TestInheritance:
    """Tests for inherits_from merging."""

    @pytest.mark.asyncio
    async def test_document_overrides_base(self, write_template, tmp_path):
        write_template("base.yml", BASE)
        write_template(
            "platforms/jira/comp.yml",
            _document("jira-comp") + "inherits_from: base.yml\n",
        )
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("jira", "component")
        document = resolved.document

        assert document.template_id == "jira-comp"
        assert document.version == "2.0.0"
        assert document.variables["company"] == "Acme"
        assert document.team_standards.testing_framework == "vitest"
        assert document.output_format.sections == ["title"]
        assert document.output_format.formatting.use_emojis is False
        assert document.output_format.formatting.include_links is True

    @pytest.mark.asyncio
    async def test_missing_base_leaves_document_unchanged(self, write_template, tmp_path):
        write_template(
            "platforms/jira/comp.yml",
            _document("jira-comp") + "inherits_from: nowhere.yml\n",
        )
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        resolved = await resolver.resolve("jira", "component")

        assert resolved.scope == ResolutionScope.PLATFORM
        assert "company" not in resolved.document.variables


class TestCaching:
    """Tests for resolver caches."""

    @pytest.mark.asyncio
    async def test_second_resolve_hits_cache(self, write_template, tmp_path):
        path = write_template("platforms/jira/comp.yml", _document("jira-comp"))
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")

        first = await resolver.resolve("jira", "component", ["React"])
        path.unlink()
        second = await resolver.resolve("jira", "component", ["React"])

        assert second is first
        stats = resolver.cache_stats()
        assert stats["resolved"]["hits"] == 1
        assert stats["resolved_keys"] == ["jira:component:react"]

    @pytest.mark.asyncio
    async def test_clear_cache(self, write_template, tmp_path):
        path = write_template("platforms/jira/comp.yml", _document("jira-comp"))
        resolver = TemplateResolver(templates_dir=tmp_path / "templates")
        await resolver.resolve("jira", "component")

        cleared = resolver.clear_cache()
        path.unlink()
        resolved = await resolver.resolve("jira", "component")

        assert cleared == {"documents": 1, "resolved": 1}
        assert resolved.scope == ResolutionScope.BUILT_IN


class TestShippedTemplates:
    """The templates bundled with the package."""

    @pytest.mark.asyncio
    async def test_jira_component(self, resolver):
        resolved = await resolver.resolve("jira", "component", ["React"])

        assert resolved.scope == ResolutionScope.PLATFORM
        assert resolved.template_id == "jira-component"
        assert resolved.document.use_markers is True
        assert "title" in resolved.document.output_format.sections

    @pytest.mark.asyncio
    async def test_every_request_resolves(self, resolver):
        for platform, document_type, stack in [
            ("jira", "component", ["React"]),
            ("github", "component", []),
            ("confluence", "wiki", ["AEM"]),
            ("linear", "feature", ["React"]),
            ("zzz", "component", []),
            ("", "", None),
        ]:
            resolved = await resolver.resolve(platform, document_type, stack)
            assert resolved.document.template_id

    @pytest.mark.asyncio
    async def test_list_available(self, resolver):
        available = await resolver.list_available()

        assert "jira/comp" in available["platform"]
        assert "react/defaults" in available["tech_stack"]
        assert "custom/defaults" in available["custom"]
