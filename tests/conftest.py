import json
from typing import Callable, List

import httpx
import pytest
from fastapi.testclient import TestClient

import config
from zeno.main import create_app


def openrouter_frame(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}, ensure_ascii=False) + "\n\n"


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


def streaming_response(chunks, status_code: int = 200, error: Exception = None) -> httpx.Response:
    """A mocked upstream response whose body arrives in the given chunks (then optionally raises)."""

    async def body():
        for chunk in chunks:
            yield chunk
        if error is not None:
            raise error

    return httpx.Response(status_code, content=body(), headers={"Content-Type": "text/event-stream"})


@pytest.fixture
def provider_keys(monkeypatch):
    monkeypatch.setattr(config, "OPENROUTER_API_KEY", "sk-or-test-1234")
    monkeypatch.setattr(config, "HUGGINGFACE_API_KEY", "hf_test_5678")
    monkeypatch.setattr(config, "TAVILY_API_KEY", "")


@pytest.fixture
def make_client(provider_keys):
    """
    make_client(handler) -> TestClient whose upstream HTTP calls go to handler.
    The app lifespan runs, so services exist on app.state.
    """
    opened = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> TestClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = TestClient(create_app(http_client=http_client))
        client.__enter__()
        opened.append(client)
        return client

    yield factory
    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def upstream_calls():
    return []
