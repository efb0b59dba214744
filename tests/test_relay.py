import json

import httpx
import pytest

import config
from conftest import openrouter_frame, split_every, streaming_response
from zeno.utils.event_stream import EventStreamDecoder

CHAT_BODY = {"messages": [{"role": "user", "content": "Hi"}], "model": "meta-llama/llama-3.3-70b-instruct:free"}


def relayed_events(text: str):
    decoder = EventStreamDecoder()
    return decoder.feed(text) + decoder.flush()


def relayed_contents(text: str):
    return [json.loads(e.data)["content"] for e in relayed_events(text) if not e.is_done]


def assert_single_trailing_done(text: str):
    events = relayed_events(text)
    assert events, "empty relay output"
    assert events[-1].is_done
    assert sum(1 for e in events if e.is_done) == 1


@pytest.mark.parametrize("chunk_size", [1, 3, 7, 64, 100000])
def test_relay_output_does_not_depend_on_chunking(make_client, chunk_size):
    body = (
        ": OPENROUTER PROCESSING\n\n"
        + openrouter_frame("Hel")
        + openrouter_frame("lo, ")
        + "data: {not json\n\n"
        + openrouter_frame("wörld 🌍")
        + "data: [DONE]\n\n"
    ).encode("utf-8")

    client = make_client(lambda request: streaming_response(split_every(body, chunk_size)))
    response = client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 200
    assert relayed_contents(response.text) == ["Hel", "lo, ", "wörld 🌍"]
    assert_single_trailing_done(response.text)


def test_relay_sets_event_stream_headers(make_client):
    client = make_client(lambda request: streaming_response([openrouter_frame("ok").encode(), b"data: [DONE]\n\n"]))

    with client.stream("POST", "/api/chat", json=CHAT_BODY) as response:
        text = "".join(response.iter_text())

    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache, no-transform"
    assert response.headers["x-accel-buffering"] == "no"
    assert text.startswith('data: {"content": "ok"}\n\n')


def test_relay_stops_reading_at_upstream_done(make_client):
    body = openrouter_frame("first") + "data: [DONE]\n\n" + openrouter_frame("after done")
    client = make_client(lambda request: streaming_response([body.encode()]))

    response = client.post("/api/chat", json=CHAT_BODY)

    assert relayed_contents(response.text) == ["first"]
    assert_single_trailing_done(response.text)


def test_relay_adds_done_when_upstream_just_ends(make_client):
    # Last frame has no trailing newline: flushed at end of stream.
    body = openrouter_frame("a") + 'data: {"choices": [{"delta": {"content": "b"}}]}'
    client = make_client(lambda request: streaming_response([body.encode()]))

    response = client.post("/api/chat", json=CHAT_BODY)

    assert relayed_contents(response.text) == ["a", "b"]
    assert_single_trailing_done(response.text)


def test_relay_ends_with_done_when_upstream_read_fails(make_client):
    client = make_client(
        lambda request: streaming_response(
            [openrouter_frame("partial").encode()], error=httpx.ReadError("connection reset")
        )
    )

    response = client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 200
    assert relayed_contents(response.text) == ["partial"]
    assert_single_trailing_done(response.text)


def test_relay_skips_empty_deltas_and_in_stream_errors(make_client):
    body = (
        openrouter_frame("")
        + 'data: {"error": {"message": "overloaded"}}\n\n'
        + 'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n'
        + openrouter_frame("text")
        + "data: [DONE]\n\n"
    )
    client = make_client(lambda request: streaming_response([body.encode()]))

    response = client.post("/api/chat", json=CHAT_BODY)

    assert relayed_contents(response.text) == ["text"]


def test_relay_forwards_system_preamble_and_filters_messages(make_client, upstream_calls):
    def handler(request):
        upstream_calls.append(request)
        return streaming_response([b"data: [DONE]\n\n"])

    client = make_client(handler)
    response = client.post(
        "/api/chat",
        json={
            "messages": [
                {"role": "user", "content": "hello"},
                {"role": "assistant", "content": 42},
                {"role": "user", "content": "Who are you?"},
            ],
            "model": "openai/gpt-oss-20b:free",
            "customPrompt": "Answer in French.",
            "userName": "Ada",
            "userGender": "female",
            "memories": ["Likes chess", "  "],
            "thinkingEnabled": True,
        },
    )

    assert response.status_code == 200
    assert len(upstream_calls) == 1
    request = upstream_calls[0]
    assert str(request.url) == config.OPENROUTER_URL
    assert request.headers["authorization"] == "Bearer sk-or-test-1234"
    assert request.headers["x-title"] == config.APP_TITLE

    sent = json.loads(request.content)
    assert sent["model"] == "openai/gpt-oss-20b:free"
    assert sent["stream"] is True

    system = sent["messages"][0]
    assert system["role"] == "system"
    assert system["content"].startswith(config.ZENO_SYSTEM_PROMPT.rstrip())
    assert "- Name: Ada" in system["content"]
    assert "- Identity: female" in system["content"]
    assert "  * Likes chess" in system["content"]
    assert config.THINKING_MODE_PROMPT in system["content"]
    assert system["content"].endswith("Additional User Instructions:\nAnswer in French.")

    conversation = sent["messages"][1:-1]
    assert conversation == [{"role": "user", "content": "hello"}, {"role": "user", "content": "Who are you?"}]
    assert sent["messages"][-1] == {"role": "system", "content": config.IDENTITY_QUERY_PROMPT}


def test_relay_defaults_user_name(make_client, upstream_calls):
    def handler(request):
        upstream_calls.append(json.loads(request.content))
        return streaming_response([b"data: [DONE]\n\n"])

    client = make_client(handler)
    client.post("/api/chat", json=CHAT_BODY)

    system = upstream_calls[0]["messages"][0]["content"]
    assert "- Name: Friend" in system
    assert "Identity" not in system
    assert upstream_calls[0]["messages"][-1] == {"role": "user", "content": "Hi"}


@pytest.mark.parametrize(
    "body",
    [
        {"messages": "not a list", "model": "x"},
        {"messages": [{"role": "user", "content": "hi"}]},
        {"messages": [{"role": "user", "content": "hi"}], "model": ""},
        {"model": "x"},
    ],
)
def test_invalid_chat_body_is_rejected_before_upstream(make_client, upstream_calls, body):
    def handler(request):
        upstream_calls.append(request)
        return streaming_response([b"data: [DONE]\n\n"])

    client = make_client(handler)
    response = client.post("/api/chat", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}
    assert response.headers["x-error-type"] == "validation"
    assert upstream_calls == []


def test_missing_openrouter_key_is_a_configuration_error(make_client, upstream_calls, monkeypatch):
    monkeypatch.setattr(config, "OPENROUTER_API_KEY", "")

    def handler(request):
        upstream_calls.append(request)
        return streaming_response([b"data: [DONE]\n\n"])

    client = make_client(handler)
    response = client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 500
    assert "OPENROUTER_API_KEY" in response.json()["error"]
    assert response.headers["x-error-type"] == "configuration"
    assert upstream_calls == []


def test_upstream_error_status_and_message_are_passed_through(make_client):
    client = make_client(lambda request: httpx.Response(429, json={"error": {"message": "Rate limit exceeded"}}))

    response = client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded"}
    assert response.headers["x-error-type"] == "provider"


def test_upstream_error_without_message_uses_default(make_client):
    client = make_client(lambda request: httpx.Response(503, text="<html>Service Unavailable</html>"))

    response = client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 503
    assert response.json() == {"error": "API Error"}


def test_unreachable_upstream_is_a_500(make_client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    response = client.post("/api/chat", json=CHAT_BODY)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process request"}
