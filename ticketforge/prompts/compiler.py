"""
Reasoning prompt compiler.

Prompt definitions are instruction templates for the external reasoning
engine. They support ``{{ path || 'fallback' | filter(arg) }}`` substitution
and ``{% if path %} ... {% else %} ... {% endif %}`` blocks, and compile to
plain instruction text: output formatting markup (headings, bullets, bold,
section markers) is stripped from whatever they produce.
"""

import asyncio
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from ticketforge.core.config import settings
from ticketforge.core.exceptions import PromptNotFoundError
from ticketforge.core.logging import get_logger
from ticketforge.domain.context import RenderContext
from ticketforge.domain.prompt import CompiledPrompt, PromptDefinition
from ticketforge.templates.cache import LocalCache
from ticketforge.templates.expressions import (
    MISSING,
    Expression,
    is_truthy,
    lookup_path,
    parse_expression,
    stringify,
)
from ticketforge.templates.parser import parse_document

logger = get_logger(__name__)

_TAG_RE = re.compile(r"(\{\{\s*[^{}]+?\s*\}\}|\{%\s*.+?\s*%\})", re.DOTALL)
_STANDALONE_BLOCK_RE = re.compile(r"^[ \t]*(\{%.*?%\})[ \t]*\r?\n", re.MULTILINE)
_LINE_MARKUP_RE = re.compile(r"^([ \t]*)(?:#{1,6}[ \t]+|h[1-6]\.[ \t]+|[*+\-][ \t]+)", re.MULTILINE)
_INLINE_MARKERS = ("**", "<!--", "-->")


def find_formatting_markup(text: str) -> list[str]:
    """Return every output-formatting marker found in text."""
    found = [match.group(0).strip() for match in _LINE_MARKUP_RE.finditer(text)]
    found.extend(marker for marker in _INLINE_MARKERS if marker in text)
    return found


def strip_formatting_markup(text: str) -> str:
    """Remove heading, bullet, bold and section markers."""
    text = _LINE_MARKUP_RE.sub(r"\1", text)
    for marker in _INLINE_MARKERS:
        text = text.replace(marker, "")
    return text


# =============================================================================
# Compiled template nodes
# =============================================================================


@dataclass
class _Text:
    text: str


@dataclass
class _Var:
    expression: Expression


@dataclass
class _If:
    condition: Expression
    negate: bool = False
    body: list[Any] = field(default_factory=list)
    else_body: list[Any] = field(default_factory=list)
    in_else: bool = False


def compile_template(source: str, label: str = "") -> list[Any]:
    """Parse template text into a node list."""
    source = _STANDALONE_BLOCK_RE.sub(r"\1", source)
    root: list[Any] = []
    stack: list[_If] = []

    def current() -> list[Any]:
        if not stack:
            return root
        block = stack[-1]
        return block.else_body if block.in_else else block.body

    for piece in _TAG_RE.split(source):
        if not piece:
            continue

        if piece.startswith("{{"):
            expression = parse_expression(piece[2:-2])
            current().append(_Var(expression) if expression else _Text(piece))
            continue

        if not piece.startswith("{%"):
            current().append(_Text(piece))
            continue

        tag = piece[2:-2].strip()
        keyword, _, argument = tag.partition(" ")
        if keyword == "if":
            argument = argument.strip()
            negate = argument.startswith("not ")
            if negate:
                argument = argument[4:]
            condition = parse_expression(argument)
            if condition is None:
                logger.warning("Empty condition ignored", prompt=label, tag=piece)
                current().append(_Text(""))
                continue
            block = _If(condition=condition, negate=negate)
            current().append(block)
            stack.append(block)
        elif keyword == "else" and stack:
            stack[-1].in_else = True
        elif keyword == "endif" and stack:
            stack.pop()
        else:
            logger.warning("Unmatched block tag ignored", prompt=label, tag=piece)

    if stack:
        logger.warning("Unclosed if block closed at end of prompt", prompt=label, open_blocks=len(stack))
    return root


# =============================================================================
# Compiler
# =============================================================================


class ReasoningPromptCompiler:
    """
    Loads prompt definitions and compiles them against a render context.

    Definitions and their parsed node trees are cached by prompt id; only
    substitution runs per call.
    """

    def __init__(
        self,
        prompts_dir: Optional[Union[str, Path]] = None,
        definition_cache: Optional[LocalCache[PromptDefinition]] = None,
        compiled_cache: Optional[LocalCache[list[Any]]] = None,
    ) -> None:
        """
        Initialize the compiler.

        Args:
            prompts_dir: Directory containing prompt definition files
            definition_cache: Cache of loaded definitions keyed by prompt id
            compiled_cache: Cache of compiled node trees keyed by prompt id
        """
        self.prompts_dir = Path(prompts_dir or settings.prompts.directory)
        self._definitions = (
            definition_cache if definition_cache is not None else LocalCache("prompt_definitions")
        )
        self._compiled = compiled_cache if compiled_cache is not None else LocalCache("prompts")
        self._indexed = False
        self._index_lock = asyncio.Lock()

    def _read_definition(self, path: Path) -> Optional[PromptDefinition]:
        text = path.read_text(encoding="utf-8")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            logger.warning("Prompt YAML malformed, using lenient loader", path=str(path), error=str(e))
            data = parse_document(text, source=str(path))

        if not isinstance(data, dict):
            logger.error("Prompt definition is not a mapping", path=str(path))
            return None

        data.setdefault("prompt_id", path.stem)
        try:
            return PromptDefinition.model_validate(data)
        except ValidationError as e:
            logger.error("Invalid prompt definition", path=str(path), errors=e.error_count())
            return None

    def _scan(self) -> list[PromptDefinition]:
        if not self.prompts_dir.is_dir():
            logger.warning("Prompts directory not found", path=str(self.prompts_dir))
            return []

        definitions = []
        for path in sorted(self.prompts_dir.glob("*.y*ml")):
            try:
                definition = self._read_definition(path)
            except (OSError, UnicodeDecodeError) as e:
                logger.error("Failed to read prompt definition", path=str(path), error=str(e))
                continue
            if definition is not None:
                definitions.append(definition)
        return definitions

    async def _ensure_index(self) -> None:
        if self._indexed:
            return
        async with self._index_lock:
            if self._indexed:
                return
            for definition in await asyncio.to_thread(self._scan):
                self._definitions.put(definition.prompt_id, definition)
            self._indexed = True
            logger.debug("Prompt definitions indexed", count=len(self._definitions))

    async def get_definition(self, prompt_id: str) -> PromptDefinition:
        """
        Get a prompt definition by id.

        Raises:
            PromptNotFoundError: If no definition has that id
        """
        await self._ensure_index()
        definition = self._definitions.get(prompt_id)
        if definition is None:
            raise PromptNotFoundError(prompt_id, available=self._definitions.keys())
        return definition

    async def available_prompts(self) -> dict[str, str]:
        """Prompt ids mapped to their purpose."""
        await self._ensure_index()
        return {
            prompt_id: self._definitions.get(prompt_id).purpose
            for prompt_id in sorted(self._definitions.keys())
        }

    def _nodes_for(self, definition: PromptDefinition) -> list[Any]:
        nodes = self._compiled.get(definition.prompt_id)
        if nodes is None:
            markup = find_formatting_markup(definition.prompt_template)
            if markup:
                logger.warning(
                    "Prompt definition contains formatting markup; it will be stripped",
                    prompt=definition.prompt_id,
                    markers=sorted(set(markup)),
                )
            nodes = self._compiled.put(
                definition.prompt_id,
                compile_template(definition.prompt_template, label=definition.prompt_id),
            )
        return nodes

    async def compile(
        self,
        prompt_id: str,
        context: Union[RenderContext, Mapping[str, Any], None] = None,
    ) -> CompiledPrompt:
        """
        Compile a prompt for the reasoning engine.

        Args:
            prompt_id: Prompt definition id
            context: Render context or plain namespace mapping

        Returns:
            Instruction text plus definition metadata

        Raises:
            PromptNotFoundError: If the prompt id is unknown
        """
        definition = await self.get_definition(prompt_id)
        nodes = self._nodes_for(definition)

        if isinstance(context, RenderContext):
            values = context.as_mapping()
        else:
            values = dict(context or {})

        def resolve(path: str) -> Any:
            value = lookup_path(values, path)
            if (value is MISSING or value is None) and path in definition.defaults:
                return definition.defaults[path]
            return value

        text = strip_formatting_markup(self._render_nodes(nodes, resolve))
        text = re.sub(r"\n{3,}", "\n\n", text).strip() + "\n"

        return CompiledPrompt(
            prompt_id=definition.prompt_id,
            version=definition.version,
            purpose=definition.purpose,
            text=text,
        )

    def _render_nodes(self, nodes: list[Any], resolve: Any) -> str:
        out: list[str] = []
        for node in nodes:
            if isinstance(node, _Text):
                out.append(node.text)
            elif isinstance(node, _Var):
                value = node.expression.evaluate(resolve)
                out.append("" if value is MISSING else stringify(value))
            elif isinstance(node, _If):
                truthy = is_truthy(node.condition.evaluate(resolve))
                if node.negate:
                    truthy = not truthy
                out.append(self._render_nodes(node.body if truthy else node.else_body, resolve))
        return "".join(out)

    def clear_cache(self) -> dict[str, int]:
        """Forget loaded definitions and compiled templates."""
        self._indexed = False
        return {
            "definitions": self._definitions.clear(),
            "compiled": self._compiled.clear(),
        }

    def cache_stats(self) -> dict[str, Any]:
        return {
            "definitions": self._definitions.stats(),
            "compiled": self._compiled.stats(),
        }
