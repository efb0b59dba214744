"""
ZENO API CLIENT
===============

Async HTTP client for the Zeno server endpoints. One instance per client
session; it owns an httpx.AsyncClient unless one is passed in.

Non-200 answers raise ChatRequestError with the server's `error` message.
Deadlines are not enforced here: the RetryController wraps each call with its
own per-attempt timeout.
"""

import logging
from typing import Any, Callable, Dict, Optional

import httpx

import config
from zeno.client.consumer import StreamConsumer

logger = logging.getLogger("Zeno")

# Failures another attempt cannot fix.
NON_RETRYABLE_ERROR_TYPES = {"configuration", "validation"}


class ChatRequestError(Exception):
    """The server answered with a non-success status."""

    def __init__(self, status_code: int, message: str, error_type: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_type = error_type

    @property
    def retryable(self) -> bool:
        if self.error_type in NON_RETRYABLE_ERROR_TYPES:
            return False
        return self.status_code != 400

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ChatRequestError":
        message = f"Request failed with status {response.status_code}"
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            message = str(data["error"])
        return cls(response.status_code, message, response.headers.get("X-Error-Type"))


class EmptyResponseError(Exception):
    """The stream finished without a single content delta."""

    def __init__(self, message: str = "No response generated"):
        super().__init__(message)
        self.message = message


class ZenoClient:

    def __init__(self, base_url: str = config.SERVER_URL, http_client: Optional[httpx.AsyncClient] = None):
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(None, connect=10.0)
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def stream_chat(self, payload: Dict[str, Any], on_update: Optional[Callable[[str], None]] = None) -> str:
        """POST /api/chat and consume the event stream; returns the full answer."""
        async with self.http_client.stream("POST", "/api/chat", json=payload) as response:
            if response.status_code != 200:
                await response.aread()
                raise ChatRequestError.from_response(response)
            text = await StreamConsumer(on_update).consume(response.aiter_bytes())
        if not text:
            raise EmptyResponseError()
        return text

    async def generate_image(self, prompt: str, model_id: str) -> str:
        """POST /api/generate-image; returns the data URI."""
        response = await self.http_client.post("/api/generate-image", json={"prompt": prompt, "modelId": model_id})
        if response.status_code != 200:
            raise ChatRequestError.from_response(response)
        return response.json()["imageUrl"]

    async def web_search(self, query: str) -> Dict[str, Any]:
        response = await self.http_client.post("/api/web-search", json={"query": query})
        if response.status_code != 200:
            raise ChatRequestError.from_response(response)
        return response.json()

    async def status(self) -> Dict[str, Any]:
        response = await self.http_client.get("/api/status")
        if response.status_code != 200:
            raise ChatRequestError.from_response(response)
        return response.json()


def is_retryable(exc: BaseException) -> bool:
    """Retry policy for RetryController: everything except requests the server refused outright."""
    if isinstance(exc, ChatRequestError):
        return exc.retryable
    return True
