"""
Logging module for the application.
This module provides functionality to set up logging for the wrapper.
"""

from .setup import setup_logging, MainFormatter

__all__ = ["setup_logging", "MainFormatter"]
