import asyncio

import httpx
import pytest

from zeno.client.api_client import ChatRequestError, EmptyResponseError, ZenoClient, is_retryable
from zeno.client.consumer import StreamConsumer


async def chunks_of(items, error=None):
    for item in items:
        yield item
    if error is not None:
        raise error


def consume(items, error=None, updates=None):
    consumer = StreamConsumer(updates.append if updates is not None else None)
    return asyncio.run(consumer.consume(chunks_of(items, error)))


def test_scenario_accumulates_split_frame():
    updates = []

    text = consume([b'data: {"content":"Hel', b'lo"}\n\nda', b"ta: [DONE]\n\n"], updates=updates)

    assert text == "Hello"
    assert updates == ["Hello"]


def test_publishes_whole_accumulator_after_each_delta():
    updates = []
    stream = b'data: {"content": "a"}\n\ndata: {"content": "b"}\n\ndata: {"content": "c"}\n\ndata: [DONE]\n\n'

    text = consume([stream[i:i + 4] for i in range(0, len(stream), 4)], updates=updates)

    assert text == "abc"
    assert updates == ["a", "ab", "abc"]


def test_frames_after_done_are_ignored():
    text = consume([b'data: {"content": "x"}\n\ndata: [DONE]\n\ndata: {"content": "y"}\n\n'])

    assert text == "x"


def test_malformed_frames_are_skipped():
    text = consume([b'data: {broken\n\ndata: ["list"]\n\ndata: {"other": 1}\n\ndata: {"content": "ok"}\n\n'])

    assert text == "ok"


def test_read_error_after_content_keeps_partial_answer():
    updates = []

    text = consume([b'data: {"content": "partial"}\n\n'], error=httpx.ReadError("reset"), updates=updates)

    assert text == "partial"
    assert updates == ["partial"]


def test_read_error_before_content_propagates():
    with pytest.raises(httpx.ReadError):
        consume([b": comment\n\n"], error=httpx.ReadError("reset"))


# ------------------------------------------------------------------------------
# ZenoClient against a mocked relay
# ------------------------------------------------------------------------------

def run_with_client(handler, operation):
    async def main():
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://zeno.test")
        client = ZenoClient(http_client=http_client)
        try:
            return await operation(client)
        finally:
            await http_client.aclose()

    return asyncio.run(main())


def test_stream_chat_returns_full_answer():
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(200, content=b'data: {"content": "Hi "}\n\ndata: {"content": "there"}\n\ndata: [DONE]\n\n')

    updates = []
    text = run_with_client(handler, lambda client: client.stream_chat({"messages": [], "model": "m"}, updates.append))

    assert text == "Hi there"
    assert updates == ["Hi ", "Hi there"]
    assert sent[0].url.path == "/api/chat"


def test_stream_chat_without_content_is_an_error():
    def handler(request):
        return httpx.Response(200, content=b"data: [DONE]\n\n")

    with pytest.raises(EmptyResponseError):
        run_with_client(handler, lambda client: client.stream_chat({"messages": [], "model": "m"}))


def test_configuration_error_is_not_retryable():
    def handler(request):
        return httpx.Response(
            500, json={"error": "OpenRouter API key not configured."}, headers={"X-Error-Type": "configuration"}
        )

    with pytest.raises(ChatRequestError) as excinfo:
        run_with_client(handler, lambda client: client.stream_chat({"messages": [], "model": "m"}))

    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "OpenRouter API key not configured."
    assert not is_retryable(excinfo.value)


def test_retry_policy_by_status():
    assert is_retryable(ChatRequestError(502, "upstream", "provider"))
    assert is_retryable(ChatRequestError(429, "Rate limit exceeded"))
    assert not is_retryable(ChatRequestError(400, "Invalid request body"))
    assert is_retryable(EmptyResponseError())
    assert is_retryable(httpx.ConnectError("refused"))


def test_generate_image_and_error_message():
    def handler(request):
        if request.url.path == "/api/generate-image":
            return httpx.Response(200, json={"imageUrl": "data:image/jpeg;base64,AAAA"})
        return httpx.Response(400, json={"error": "Query is required"})

    url = run_with_client(handler, lambda client: client.generate_image("a cat", "Tongyi-MAI/Z-Image-Turbo"))
    assert url == "data:image/jpeg;base64,AAAA"

    with pytest.raises(ChatRequestError, match="Query is required"):
        run_with_client(handler, lambda client: client.web_search(""))
