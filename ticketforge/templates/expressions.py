"""
Expression evaluation shared by the template renderer and the prompt compiler.

An expression is ``alternative ('||' alternative)* ('|' filter)*`` where an
alternative is a dotted path or a literal, and a filter is a registered name
with optional arguments, e.g. ``project.tech_stack || [] | join(', ')``.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Optional

from ticketforge.core.logging import get_logger
from ticketforge.templates.parser import coerce_scalar, split_inline_list

logger = get_logger(__name__)


class _Missing:
    """Marker for a path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

_LITERAL_RE = re.compile(r"""^(["'].*["']|\[.*\]|[-+]?\d+(\.\d+)?|true|false|null)$""")
_FILTER_RE = re.compile(r"^(?P<name>[A-Za-z_]\w*)\s*(?:\((?P<args>.*)\))?$", re.DOTALL)


def lookup_path(data: Any, path: str) -> Any:
    """Walk a dotted path through dicts and lists; MISSING when any step is absent."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return MISSING
    return current


def is_truthy(value: Any) -> bool:
    """Conditional truthiness: blank strings and empty collections are false."""
    if value is None or value is MISSING:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return bool(value)


def stringify(value: Any) -> str:
    """Text form of a value inside rendered output."""
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple, set)):
        return ", ".join(stringify(item) for item in value)
    if isinstance(value, dict):
        return ", ".join(f"{key}: {stringify(item)}" for key, item in value.items())
    return str(value)


# =============================================================================
# Filters
# =============================================================================


def _join(value: Any, separator: str = ", ") -> Any:
    if isinstance(value, (list, tuple, set)):
        return str(separator).join(stringify(item) for item in value)
    return value


def _length(value: Any) -> int:
    if value is None or value is MISSING:
        return 0
    try:
        return len(value)
    except TypeError:
        return 0


def _capitalize(value: Any) -> str:
    text = stringify(value)
    return text[:1].upper() + text[1:]


def _default(value: Any, fallback: Any = "") -> Any:
    return value if is_truthy(value) else fallback


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else MISSING
    return value


def _last(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[-1] if value else MISSING
    return value


def _truncate(value: Any, length: int = 80) -> str:
    text = stringify(value)
    length = int(length)
    return text if len(text) <= length else text[: max(length - 3, 0)].rstrip() + "..."


def _replace(value: Any, old: str = "", new: str = "") -> str:
    return stringify(value).replace(str(old), str(new))


def _percentage(value: Any) -> Any:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return value
    if number <= 1:
        number *= 100
    return f"{round(number)}%"


def _round(value: Any, digits: int = 0) -> Any:
    try:
        rounded = round(float(value), int(digits))
    except (TypeError, ValueError):
        return value
    return int(rounded) if int(digits) == 0 else rounded


def _date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    if isinstance(value, datetime):
        moment = value
    elif value is None or value is MISSING or value == "now":
        moment = datetime.now(timezone.utc)
    else:
        return stringify(value)
    return moment.strftime(str(fmt))


FILTERS: dict[str, Callable[..., Any]] = {
    "join": _join,
    "length": _length,
    "count": _length,
    "upper": lambda value: stringify(value).upper(),
    "uppercase": lambda value: stringify(value).upper(),
    "lower": lambda value: stringify(value).lower(),
    "lowercase": lambda value: stringify(value).lower(),
    "capitalize": _capitalize,
    "default": _default,
    "first": _first,
    "last": _last,
    "truncate": _truncate,
    "replace": _replace,
    "percentage": _percentage,
    "confidence": _percentage,
    "round": _round,
    "date": _date,
}


def apply_filter(value: Any, name: str, args: tuple[Any, ...] = ()) -> Any:
    """Apply a named filter; unknown names and filter errors leave the value as is."""
    func = FILTERS.get(name)
    if func is None:
        logger.debug("Unknown filter ignored", filter=name)
        return value
    try:
        return func(value, *args)
    except (TypeError, ValueError) as e:
        logger.debug("Filter failed", filter=name, error=str(e))
        return value


# =============================================================================
# Expression parsing
# =============================================================================


def _split_outside(text: str, separator: str) -> list[str]:
    """Split on a separator that is not inside quotes or parentheses.

    A single '|' never matches inside '||'.
    """
    parts: list[str] = []
    current: list[str] = []
    quote: Optional[str] = None
    depth = 0
    index = 0
    while index < len(text):
        char = text[index]
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth = max(depth - 1, 0)
        elif depth == 0 and text.startswith(separator, index):
            if separator == "|" and text.startswith("||", index):
                current.append("||")
                index += 2
                continue
            parts.append("".join(current))
            current = []
            index += len(separator)
            continue
        current.append(char)
        index += 1
    parts.append("".join(current))
    return [part.strip() for part in parts]


@dataclass(frozen=True)
class Alternative:
    """One side of an '||' chain."""

    is_literal: bool
    value: Any


@dataclass(frozen=True)
class Expression:
    """Parsed ``{{ ... }}`` body."""

    source: str
    alternatives: tuple[Alternative, ...]
    filters: tuple[tuple[str, tuple[Any, ...]], ...] = field(default_factory=tuple)

    @property
    def primary_path(self) -> Optional[str]:
        first = self.alternatives[0]
        return None if first.is_literal else first.value

    def evaluate(self, resolve: Callable[[str], Any]) -> Any:
        """
        Evaluate against a path resolver.

        Args:
            resolve: Returns the value for a dotted path, or MISSING

        Returns:
            The filtered value, or MISSING when no alternative resolved
        """
        value: Any = MISSING
        last = len(self.alternatives) - 1
        for position, alternative in enumerate(self.alternatives):
            candidate = alternative.value if alternative.is_literal else resolve(alternative.value)
            if is_truthy(candidate) or (position == last and candidate not in (MISSING, None)):
                value = candidate
                break

        if value is MISSING:
            return MISSING

        for name, args in self.filters:
            value = apply_filter(value, name, args)
        return value


def _parse_alternative(text: str) -> Alternative:
    if _LITERAL_RE.match(text):
        return Alternative(is_literal=True, value=coerce_scalar(text))
    return Alternative(is_literal=False, value=text)


def _parse_filter(text: str) -> Optional[tuple[str, tuple[Any, ...]]]:
    match = _FILTER_RE.match(text)
    if not match:
        return None
    raw_args = match.group("args")
    args = tuple(coerce_scalar(arg) for arg in split_inline_list(raw_args)) if raw_args else ()
    return match.group("name"), args


@lru_cache(maxsize=1024)
def parse_expression(text: str) -> Optional[Expression]:
    """Parse an expression body; None when it has no usable value part."""
    segments = _split_outside(text.strip(), "|")
    alternatives = tuple(
        _parse_alternative(part) for part in _split_outside(segments[0], "||") if part
    )
    if not alternatives:
        return None

    filters = []
    for segment in segments[1:]:
        parsed = _parse_filter(segment)
        if parsed is None:
            logger.debug("Malformed filter ignored", expression=text, filter=segment)
            continue
        filters.append(parsed)

    return Expression(source=text, alternatives=alternatives, filters=tuple(filters))
