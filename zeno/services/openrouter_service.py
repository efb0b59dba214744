"""
OPENROUTER SERVICE MODULE
=========================

Upstream provider client for chat completions. Opens a streamed POST to
OpenRouter and hands the still-open response to the relay, or raises before
any byte is relayed:

  - ConfigurationError  no OPENROUTER_API_KEY (HTTP 500)
  - ProviderError       OpenRouter unreachable (HTTP 500) or answered with a
                        non-success status (that status, with the provider's
                        error message when it sent one)
"""

import json
import logging
from typing import Any, Dict, List

import httpx

import config
from zeno.exceptions import ConfigurationError, ProviderError

logger = logging.getLogger("Zeno")


def mask_key(key: str) -> str:
    """Show only the last 4 characters of an API key in logs."""
    return f"...{key[-4:]}" if len(key) > 4 else "****"


def extract_error_message(body: bytes, default: str = "API Error") -> str:
    """Pull `error.message` (or a plain `error` string) out of a provider error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return default
    if not isinstance(data, dict):
        return default
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message") or default
    if isinstance(error, str) and error:
        return error
    return default


class OpenRouterService:

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    def require_api_key(self) -> str:
        api_key = config.OPENROUTER_API_KEY
        if not api_key:
            raise ConfigurationError(
                "OpenRouter API key not configured. Please add OPENROUTER_API_KEY in environment variables."
            )
        return api_key

    def _headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": config.APP_REFERER,
            "X-Title": config.APP_TITLE,
        }

    async def open_stream(self, model: str, messages: List[Dict[str, Any]]) -> httpx.Response:
        """Send the completion request with stream=true; the caller must close the response."""
        api_key = self.require_api_key()
        request = self.http_client.build_request(
            "POST",
            config.OPENROUTER_URL,
            headers=self._headers(api_key),
            json={"model": model or config.DEFAULT_MODEL, "messages": messages, "stream": True},
        )
        logger.info("Streaming %s via OpenRouter (key %s, %s messages)", model, mask_key(api_key), len(messages))

        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error("OpenRouter request failed: %s", e)
            raise ProviderError("Failed to process request", status_code=500) from e

        if response.is_error:
            body = await response.aread()
            await response.aclose()
            message = extract_error_message(body)
            logger.warning("OpenRouter returned %s: %s", response.status_code, message)
            raise ProviderError(message, status_code=response.status_code)

        return response
