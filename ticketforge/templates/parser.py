"""
Lenient loader for the indentation-based template document format.

Supported:
    # comments, blank lines
    key: value                  scalars (numbers, true/false, null, "quoted")
    key: [a, b, "c, d"]         inline lists
    key:                        nested mapping (deeper indented keys follow)
    key:                        block list of scalars
      - item
    key: |                      block literal, ends when indentation returns
      text                      to the key's level

Anything else (stray code fences, lines without a key, list items with no
owning key) is skipped instead of failing the whole document.
"""

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from ticketforge.core.exceptions import TemplateParseError
from ticketforge.core.logging import get_logger

logger = get_logger(__name__)

_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?\d+\.\d+$")
_BLOCK_INDICATORS = {"|", "|-", "|+", ">", ">-"}


@dataclass
class _Frame:
    indent: int
    container: Union[dict[str, Any], list[Any]]
    parent: Optional[dict[str, Any]] = None
    key: Optional[str] = None


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def split_inline_list(body: str) -> list[str]:
    """Split on commas that are not inside quotes."""
    items: list[str] = []
    current: list[str] = []
    quote: Optional[str] = None
    for char in body:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
            current.append(char)
        elif char == ",":
            items.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    items.append("".join(current).strip())
    return [item for item in items if item]


def strip_trailing_comment(value: str) -> str:
    """Drop a " #" comment, looking past a leading quoted string."""
    start = 0
    if value[:1] in ("\"", "'"):
        closing = value.find(value[0], 1)
        if closing > 0:
            start = closing + 1
    marker = value.find(" #", start)
    return value[:marker].rstrip() if marker >= 0 else value


def coerce_scalar(value: str) -> Any:
    """Turn a raw value string into a str, number, bool, None or list."""
    value = strip_trailing_comment(value.strip())
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]

    if value.startswith("[") and value.endswith("]"):
        return [coerce_scalar(item) for item in split_inline_list(value[1:-1])]

    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "~"):
        return None
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def _read_block(lines: list[str], start: int, key_indent: int) -> tuple[str, int]:
    """Collect a block literal; returns the text and the index of the next unread line."""
    collected: list[str] = []
    index = start
    while index < len(lines):
        line = lines[index]
        if line.strip():
            if _indent_of(line) <= key_indent or line.strip() == "---":
                break
        collected.append(line)
        index += 1

    body = [line for line in collected if line.strip()]
    base = min((_indent_of(line) for line in body), default=0)
    text = "\n".join(line[base:].rstrip() if line.strip() else "" for line in collected)
    return text.strip("\n"), index


def _append_list_item(frame: _Frame, item: str) -> bool:
    if isinstance(frame.container, dict):
        # An empty mapping opened by "key:" becomes a list on its first item
        if frame.container or frame.parent is None or frame.key is None:
            return False
        frame.container = []
        frame.parent[frame.key] = frame.container
    frame.container.append(coerce_scalar(item))
    return True


def _takes_items_at(frame: _Frame, indent: int) -> bool:
    # "key:" followed by "- item" lines at the key's own indent
    if frame.indent != indent or frame.key is None:
        return False
    return isinstance(frame.container, list) or not frame.container


def parse_document(text: str, source: Optional[str] = None) -> dict[str, Any]:
    """
    Parse document text into a nested dict.

    Args:
        text: Raw document text
        source: Label used in log lines and errors

    Returns:
        Parsed mapping (possibly empty)

    Raises:
        TemplateParseError: If text is not a string
    """
    if not isinstance(text, str):
        raise TemplateParseError(
            f"Expected document text, got {type(text).__name__}", source=source
        )

    root: dict[str, Any] = {}
    stack = [_Frame(indent=-1, container=root)]
    lines = [line.expandtabs(2) for line in text.splitlines()]
    skipped = 0
    index = 0

    while index < len(lines):
        line = lines[index]
        index += 1
        stripped = line.strip()
        if (
            not stripped
            or stripped.startswith("#")
            or stripped.startswith("```")
            or stripped == "---"
        ):
            continue

        indent = _indent_of(line)
        is_item = stripped == "-" or stripped.startswith("- ")
        while len(stack) > 1 and stack[-1].indent >= indent:
            if is_item and _takes_items_at(stack[-1], indent):
                break
            stack.pop()
        frame = stack[-1]

        if is_item:
            if not _append_list_item(frame, stripped[1:]):
                skipped += 1
            continue

        key, sep, value = stripped.partition(":")
        key = key.strip().strip("\"'")
        if not sep or not key or not isinstance(frame.container, dict):
            skipped += 1
            continue

        value = value.strip()
        if value in _BLOCK_INDICATORS:
            frame.container[key], index = _read_block(lines, index, indent)
        elif value == "":
            child: dict[str, Any] = {}
            frame.container[key] = child
            stack.append(_Frame(indent=indent, container=child, parent=frame.container, key=key))
        else:
            frame.container[key] = coerce_scalar(value)

    if skipped:
        logger.debug("Skipped unrecognized document lines", source=source, count=skipped)

    return root


async def load_document_file(path: Path) -> dict[str, Any]:
    """Read a document file off the event loop and parse it."""
    text = await asyncio.to_thread(path.read_text, encoding="utf-8")
    return parse_document(text, source=str(path))
