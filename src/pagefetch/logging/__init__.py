"""Logging helpers for pagefetch."""

from .setup import LOGGER_NAME, configure_logging

__all__ = ["LOGGER_NAME", "configure_logging"]
