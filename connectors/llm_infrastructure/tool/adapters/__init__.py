"""Tool adapters registered to the registry."""

# Import adapters to trigger @register_tool side effects
from .bing_search import BingSearchTool

__all__ = ["BingSearchTool"]
