"""
Service layer implementations.
"""

from ticketforge.services.context_builder import ContextBuilder
from ticketforge.services.generation_service import TicketGenerationService

__all__ = [
    "ContextBuilder",
    "TicketGenerationService",
]
