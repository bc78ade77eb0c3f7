"""
Reasoning prompt compilation.
"""

from ticketforge.prompts.compiler import (
    ReasoningPromptCompiler,
    find_formatting_markup,
    strip_formatting_markup,
)

__all__ = [
    "ReasoningPromptCompiler",
    "find_formatting_markup",
    "strip_formatting_markup",
]
