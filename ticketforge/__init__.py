"""
ticketforge - design component to platform ticket generation.
"""

__version__ = "0.1.0"
