"""
Utility modules for the Interactive Avatar backend.
"""

from .logger import setup_logging, get_logger, SessionLogger

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "SessionLogger",
]
