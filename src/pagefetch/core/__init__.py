"""Core fetch abstractions."""

from .cookies import CookieJarStore
from .errors import ConfigurationError, FetchError
from .fetcher import CookieJarBindable, Fetcher
from .middleware import LoggingFetcher
from .request import Request
from .streams import ContentStream, MarkupStream, ResponseStream

__all__ = [
    "ConfigurationError",
    "ContentStream",
    "CookieJarBindable",
    "CookieJarStore",
    "FetchError",
    "Fetcher",
    "LoggingFetcher",
    "MarkupStream",
    "Request",
    "ResponseStream",
]
