"""Fetcher implementations for pagefetch."""

from .browser import BrowserFetcher, NavigationState
from .direct import DirectFetcher
from .selector import FetcherType, select_fetcher

__all__ = [
    "BrowserFetcher",
    "DirectFetcher",
    "FetcherType",
    "NavigationState",
    "select_fetcher",
]
