"""
Template document loading, resolution and rendering.
"""

from ticketforge.templates.cache import LocalCache
from ticketforge.templates.parser import load_document_file, parse_document
from ticketforge.templates.renderer import TemplateRenderer
from ticketforge.templates.resolver import TemplateResolver

__all__ = [
    "LocalCache",
    "parse_document",
    "load_document_file",
    "TemplateRenderer",
    "TemplateResolver",
]
