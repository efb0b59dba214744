"""
WEB SEARCH SERVICE MODULE
=========================

Tavily web search, used two ways:
  - POST /api/web-search returns the raw results + answer to the caller.
  - The chat relay, when a request has enableWebSearch, searches for the last
    user message and adds the formatted results to the system preamble.

FLOW:
  1. search(query): call Tavily (with retries for rate limits and transient
     errors) and return {"results": [...], "answer": ...}.
  2. build_context(messages): pick the last user message, search for it with
     today's date appended, and format the results as prompt text.

If TAVILY_API_KEY is not set, tavily_client is None: the endpoint reports a
configuration error and the relay skips the search step.
"""

import logging
from typing import Any, Dict, List, Optional

from tavily import TavilyClient

import config
from zeno.exceptions import ConfigurationError, ProviderError
from zeno.utils.retry import with_retry
from zeno.utils.time_info import get_today_label

logger = logging.getLogger("Zeno")


class SearchContext:
    """Search results already formatted for the system preamble."""

    def __init__(self, query: str, today: str, results_text: str):
        self.query = query
        self.today = today
        self.results_text = results_text

    def as_prompt_section(self) -> str:
        return (
            f"CRITICAL: TODAY'S DATE IS {self.today}.\n"
            f"REAL-TIME SEARCH RESULTS for \"{self.query}\":\n"
            f"{self.results_text}\n\n"
            "INSTRUCTIONS:\n"
            "1. The search results above are the absolute truth for current events.\n"
            "2. If the user asks for \"latest\", \"current\", or \"today's\" news, ONLY use the search results above.\n"
            "3. IGNORE your internal training data if it contradicts these results or if the results are more recent.\n"
            "4. Always cite your sources from the provided URLs."
        )

    def as_context_message(self) -> Dict[str, str]:
        return {
            "role": "system",
            "content": f"Current Date: {self.today}\nContext from web search: {self.results_text}",
        }


class SearchService:
    """Thin wrapper around TavilyClient. Created once at startup."""

    def __init__(self, api_key: Optional[str] = None):
        api_key = config.TAVILY_API_KEY if api_key is None else api_key
        if api_key:
            self.tavily_client = TavilyClient(api_key=api_key)
            logger.info("Tavily search client initialized successfully")
        else:
            self.tavily_client = None
            logger.warning("TAVILY_API_KEY not set. Web search will be unavailable.")

    @property
    def enabled(self) -> bool:
        return self.tavily_client is not None

    def search(self, query: str, search_depth: str = "basic") -> Dict[str, Any]:
        """Run one Tavily search; raises ConfigurationError / ProviderError."""
        if not self.tavily_client:
            raise ConfigurationError("Web search not configured. Please add TAVILY_API_KEY in environment variables.")

        try:
            response = with_retry(
                lambda: self.tavily_client.search(
                    query=query,
                    search_depth=search_depth,
                    max_results=config.SEARCH_MAX_RESULTS,
                    include_answer=True,
                ),
            )
        except Exception as e:
            logger.error("Tavily search failed for %r: %s", query, e)
            raise ProviderError(f"Tavily API error: {e}", status_code=500) from e

        results = response.get("results", []) or []
        logger.info("Tavily search completed for query: %s (%s results)", query, len(results))
        return {"results": results, "answer": response.get("answer")}

    def build_context(self, messages: List[Dict[str, Any]]) -> Optional[SearchContext]:
        """
        Search for the last user message and format the results for the prompt.
        Returns None when search is disabled, finds nothing, or fails; the chat
        still goes ahead without search results in that case.
        """
        if not self.enabled:
            return None

        today = get_today_label()
        last_user = next((m for m in reversed(messages) if m.get("role") == "user"), None)
        content = last_user.get("content") if last_user else None
        if isinstance(content, str) and content.strip():
            query = f"{content} (Current Date: {today})"
        else:
            query = f"latest news and current events for {today}"

        try:
            found = self.search(query, search_depth="advanced")
        except ProviderError as e:
            logger.warning("Skipping web search for chat request: %s", e)
            return None

        results = found["results"][: config.SEARCH_MAX_RESULTS]
        if not results:
            return None
        results_text = "\n".join(
            f"- {r.get('title', 'No title')}: {r.get('content', '')} (Source: {r.get('url', '')})"
            for r in results
        )
        return SearchContext(query, today, results_text)
