"""Configuration utilities for pagefetch."""

from .loader import Config, FetchSettings, LoggingSettings, load_config

__all__ = ["Config", "FetchSettings", "LoggingSettings", "load_config"]
