"""HTTP clients used by the tool adapters."""

from .bing_client import BingClient, SearchParams, SearchResult

__all__ = ["BingClient", "SearchParams", "SearchResult"]
