"""
Template resolver - finds the most specific template document for a request.

Lookup order:
    1. platforms/<platform>/<type>.yml
    2. tech-stacks/<stack>/<type>.yml, tech-stacks/<stack>/defaults.yml
    3. tech-stacks/custom/<type>.yml, tech-stacks/custom/defaults.yml
    4. a synthesized built-in document

A file that is missing, unreadable or fails validation drops through to the
next candidate, so resolve() always returns a document.
"""

import asyncio
import re
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from ticketforge.core.config import settings
from ticketforge.core.constants import (
    DEFAULT_SECTIONS,
    DEFAULT_STACK,
    DOCUMENT_TYPE_FILES,
    ResolutionScope,
)
from ticketforge.core.exceptions import TemplateParseError, TemplateValidationError
from ticketforge.core.logging import get_logger
from ticketforge.domain.template import ResolvedTemplate, TemplateDocument
from ticketforge.templates.cache import LocalCache
from ticketforge.templates.parser import load_document_file

logger = get_logger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9_-]+")

BUILT_IN_SOURCE = "built-in"


def slugify(value: Any, default: str) -> str:
    """Lower-case path segment with anything outside [a-z0-9_-] collapsed to '-'."""
    slug = _SLUG_RE.sub("-", str(value or "").strip().lower()).strip("-")
    return slug or default


def primary_stack(tech_stack: Union[str, Sequence[str], None]) -> str:
    """Directory name for the first technology listed."""
    if isinstance(tech_stack, str):
        tech_stack = [tech_stack]
    first = next((item for item in (tech_stack or []) if str(item).strip()), None)
    return slugify(first, DEFAULT_STACK)


def document_file_stem(document_type: str) -> str:
    key = slugify(document_type, "component")
    return DOCUMENT_TYPE_FILES.get(key, key)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override onto base without touching either."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_builtin_document(platform: str, document_type: str, stack: str) -> TemplateDocument:
    """Minimal valid document used when no file resolves."""
    return TemplateDocument.model_validate(
        {
            "template_id": f"{platform}-{document_type}-default",
            "version": "1.0.0",
            "platform": platform,
            "document_type": document_type,
            "description": f"Built-in {document_type} template ({stack})",
            "variables": {
                "component_name": "{{ design.component_name }}",
                "technologies": "{{ project.tech_stack }}",
                "design_ref": "{{ design.url }}",
                "complexity_level": "{{ calculated.complexity }}",
            },
            "output_format": {
                "ticket_type": "task",
                "sections": list(DEFAULT_SECTIONS),
                "formatting": {"use_emojis": True},
            },
            "customization": {"include_ai_context_markers": False},
        }
    )


class TemplateResolver:
    """
    Resolves template documents through the tiered fallback chain.

    Parsed files are cached by path and resolved documents by
    ``platform:type:stack``; both caches can be injected.
    """

    def __init__(
        self,
        templates_dir: Optional[Union[str, Path]] = None,
        document_cache: Optional[LocalCache[dict[str, Any]]] = None,
        resolved_cache: Optional[LocalCache[ResolvedTemplate]] = None,
        base_document: Optional[str] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            templates_dir: Root of the template tree
            document_cache: Cache of parsed files keyed by path
            resolved_cache: Cache of resolved templates keyed by request
            base_document: File merged under documents with inherits_from
        """
        self.templates_dir = Path(templates_dir or settings.templates.directory)
        self.base_document = base_document or settings.templates.base_document
        self._documents = document_cache if document_cache is not None else LocalCache("documents")
        self._resolved = resolved_cache if resolved_cache is not None else LocalCache("resolved")

    def candidate_paths(
        self, platform: str, document_type: str, stack: str
    ) -> list[tuple[ResolutionScope, Path]]:
        """File candidates in lookup order (built-in excluded)."""
        stem = document_file_stem(document_type)
        root = self.templates_dir
        candidates = [(ResolutionScope.PLATFORM, root / "platforms" / platform / f"{stem}.yml")]
        if stack != DEFAULT_STACK:
            candidates += [
                (ResolutionScope.TECH_STACK, root / "tech-stacks" / stack / f"{stem}.yml"),
                (ResolutionScope.TECH_STACK, root / "tech-stacks" / stack / "defaults.yml"),
            ]
        candidates += [
            (ResolutionScope.CUSTOM, root / "tech-stacks" / DEFAULT_STACK / f"{stem}.yml"),
            (ResolutionScope.CUSTOM, root / "tech-stacks" / DEFAULT_STACK / "defaults.yml"),
        ]
        return candidates

    async def resolve(
        self,
        platform: str,
        document_type: str = "component",
        tech_stack: Union[str, Sequence[str], None] = None,
    ) -> ResolvedTemplate:
        """
        Resolve exactly one template document.

        Args:
            platform: Target platform name
            document_type: Requested document type
            tech_stack: Technologies, primary first

        Returns:
            The first valid document along the fallback chain
        """
        platform = slugify(platform, "generic")
        document_type = slugify(document_type, "component")
        stack = primary_stack(tech_stack)
        cache_key = f"{platform}:{document_type}:{stack}"

        cached = self._resolved.get(cache_key)
        if cached is not None:
            return cached

        seen: set[Path] = set()
        for scope, path in self.candidate_paths(platform, document_type, stack):
            if path in seen:
                continue
            seen.add(path)

            document = await self._try_load(path)
            if document is None:
                continue

            resolved = ResolvedTemplate(
                document=document,
                scope=scope,
                source=str(path),
                cache_key=cache_key,
                platform=platform,
                document_type=document_type,
                tech_stack=stack,
            )
            logger.info(
                "Template resolved",
                scope=scope.value,
                template_id=document.template_id,
                cache_key=cache_key,
            )
            return self._resolved.put(cache_key, resolved)

        logger.info("Using built-in template", cache_key=cache_key)
        resolved = ResolvedTemplate(
            document=build_builtin_document(platform, document_type, stack),
            scope=ResolutionScope.BUILT_IN,
            source=BUILT_IN_SOURCE,
            cache_key=cache_key,
            platform=platform,
            document_type=document_type,
            tech_stack=stack,
        )
        return self._resolved.put(cache_key, resolved)

    async def _try_load(self, path: Path) -> Optional[TemplateDocument]:
        """Load, merge and validate one candidate; None means try the next one."""
        if not await asyncio.to_thread(path.is_file):
            return None

        try:
            raw = await self._load_raw(path)
            if raw.get("inherits_from"):
                raw = await self._apply_inheritance(raw, path)
            return TemplateDocument.from_mapping(raw, source=str(path))

        except TemplateValidationError as e:
            logger.warning("Template failed validation", path=str(path), errors=e.details["errors"])
        except (OSError, UnicodeDecodeError, TemplateParseError) as e:
            logger.warning("Template could not be loaded", path=str(path), error=str(e))
        except Exception as e:  # the chain must always reach the built-in tier
            logger.error("Unexpected template load failure", path=str(path), error=str(e))
        return None

    async def _load_raw(self, path: Path) -> dict[str, Any]:
        key = str(path)
        cached = self._documents.get(key)
        if cached is not None:
            return cached

        raw = await load_document_file(path)
        logger.debug("Loaded template file", path=key, keys=len(raw))
        return self._documents.put(key, raw)

    async def _apply_inheritance(self, raw: dict[str, Any], path: Path) -> dict[str, Any]:
        """Merge the document over its declared base; a missing base leaves it unchanged."""
        parent_name = str(raw["inherits_from"])
        base_path = self.templates_dir / Path(parent_name).name
        if base_path == path or not await asyncio.to_thread(base_path.is_file):
            logger.warning("Base template not found", base=parent_name, path=str(path))
            return raw

        base = await self._load_raw(base_path)
        return deep_merge(base, raw)

    async def list_available(self) -> dict[str, list[str]]:
        """Template files on disk grouped by scope."""
        return await asyncio.to_thread(self._scan_templates)

    def _scan_templates(self) -> dict[str, list[str]]:
        found: dict[str, list[str]] = {
            ResolutionScope.PLATFORM.value: [],
            ResolutionScope.TECH_STACK.value: [],
            ResolutionScope.CUSTOM.value: [],
        }
        platforms_dir = self.templates_dir / "platforms"
        stacks_dir = self.templates_dir / "tech-stacks"

        if platforms_dir.is_dir():
            for file in sorted(platforms_dir.glob("*/*.yml")):
                found[ResolutionScope.PLATFORM.value].append(f"{file.parent.name}/{file.stem}")
        if stacks_dir.is_dir():
            for file in sorted(stacks_dir.glob("*/*.yml")):
                scope = (
                    ResolutionScope.CUSTOM
                    if file.parent.name == DEFAULT_STACK
                    else ResolutionScope.TECH_STACK
                )
                found[scope.value].append(f"{file.parent.name}/{file.stem}")
        return found

    def clear_cache(self) -> dict[str, int]:
        """Empty both caches."""
        cleared = {
            "documents": self._documents.clear(),
            "resolved": self._resolved.clear(),
        }
        logger.info("Template caches cleared", **cleared)
        return cleared

    def cache_stats(self) -> dict[str, Any]:
        return {
            "documents": self._documents.stats(),
            "resolved": self._resolved.stats(),
            "resolved_keys": self._resolved.keys(),
        }
