"""Bing web search tool."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from connectors.config.settings import bing_settings
from connectors.schema import ToolInfo

from ...errors import ConfigError
from ..base import BaseTool
from ..engines.bing_client import (
    REGION_US,
    SAFE_SEARCH_MODERATE,
    BingClient,
    SearchParams,
)
from ..registry import register_tool

logger = logging.getLogger(__name__)

DEFAULT_TOOL_NAME = "bing_search"
DEFAULT_TOOL_DESC = "search web for information by bing"
DEFAULT_MAX_RESULTS = 10
MAX_RESULTS_LIMIT = 50


class SearchRequest(BaseModel):
    query: str = Field(..., description="The query to search the web for")
    offset: int = Field(
        default=0,
        description="Subtract 1 from the page number of the search results, default: 0",
    )


class SearchResultItem(BaseModel):
    title: str = Field(..., description="The title of the search result")
    url: str = Field(..., description="The link of the search result")
    description: str = Field(..., description="The description of the search result")


class SearchResponse(BaseModel):
    results: List[SearchResultItem] = Field(default_factory=list, description="The results of the search")


@register_tool("bing_search", version="v1")
class BingSearchTool(BaseTool):
    """Web search through the Bing v7 API.

    ``bing_config`` is forwarded to :class:`BingClient` (``headers``,
    ``timeout``, ``proxy_url``, ``cache``, ``max_retries``).
    """

    type_name = "BingSearch"

    def __init__(
        self,
        api_key: Optional[str] = None,
        region: str = REGION_US,
        max_results: int = DEFAULT_MAX_RESULTS,
        safe_search: str = SAFE_SEARCH_MODERATE,
        time_range: Optional[str] = None,
        tool_name: str = DEFAULT_TOOL_NAME,
        tool_desc: str = DEFAULT_TOOL_DESC,
        bing_config: Optional[Dict[str, Any]] = None,
        client: Optional[BingClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else bing_settings.api_key
        if not self.api_key:
            raise ConfigError("bing search tool config is missing API key")
        self.tool_name = tool_name or DEFAULT_TOOL_NAME
        self.tool_desc = tool_desc or DEFAULT_TOOL_DESC
        self.region = region or REGION_US
        if max_results <= 0:
            max_results = DEFAULT_MAX_RESULTS
        self.max_results = min(max_results, MAX_RESULTS_LIMIT)
        self.safe_search = safe_search or SAFE_SEARCH_MODERATE
        self.time_range = time_range or ""

        if client is None:
            config = dict(bing_config or {})
            headers = dict(config.pop("headers", None) or {})
            headers["Ocp-Apim-Subscription-Key"] = self.api_key
            client = BingClient(headers=headers, **config)
        self.client = client

    def info(self) -> ToolInfo:
        return ToolInfo(
            name=self.tool_name,
            desc=self.tool_desc,
            params=SearchRequest.model_json_schema(),
        )

    def search(self, request: SearchRequest) -> SearchResponse:
        results = self.client.search(
            SearchParams(
                query=request.query,
                region=self.region,
                safe_search=self.safe_search,
                time_range=self.time_range,
                offset=request.offset,
                count=self.max_results,
            )
        )
        items = [SearchResultItem(title=r.title, url=r.url, description=r.description) for r in results]
        return SearchResponse(results=items[: self.max_results])

    def invokable_run(self, arguments: str) -> str:
        try:
            request = SearchRequest.model_validate_json(arguments)
        except ValidationError as exc:
            raise ConfigError(f"[BingSearchTool.invokable_run] invalid arguments: {exc}") from exc
        logger.debug("Bing search: %s (offset=%d)", request.query, request.offset)
        response = self.search(request)
        return json.dumps(response.model_dump(), ensure_ascii=False)


__all__ = ["BingSearchTool", "SearchRequest", "SearchResponse", "SearchResultItem"]
