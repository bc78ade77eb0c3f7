"""
External reasoning engine clients.
"""

from ticketforge.reasoning.client import (
    HTTPReasoningClient,
    ReasoningEngine,
    parse_reasoning_response,
)

__all__ = [
    "ReasoningEngine",
    "HTTPReasoningClient",
    "parse_reasoning_response",
]
