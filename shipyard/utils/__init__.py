"""Utility functions for Shipyard."""

from shipyard.utils.debug import save_attempt_analysis, save_debug_data
from shipyard.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "save_attempt_analysis",
    "save_debug_data",
]
