"""
CHAT RELAY SERVICE MODULE
=========================

Server side of POST /api/chat. The relay is a stateless per-request forwarder:
nothing it sees is kept after the response ends.

FLOW:
  1. open(request): check the OpenRouter key, optionally run a web search,
     build the system preamble, drop unusable messages and open the upstream
     stream. Every failure here happens before the first relayed byte, so the
     route can still answer with a plain JSON error.
  2. stream(upstream): re-frame the provider's `data:` lines into
     `data: {"content": "<delta>"}` events for the browser, ending with exactly
     one `data: [DONE]` whether the provider finished cleanly, sent its own
     [DONE], dropped the connection or the read loop raised.

Malformed provider frames (bad JSON, partial lines that never complete,
in-stream error payloads) are skipped and logged; they never end the stream.
"""

import asyncio
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

import config
from zeno.models import ChatRequest
from zeno.services.openrouter_service import OpenRouterService
from zeno.services.search_service import SearchContext, SearchService
from zeno.utils.event_stream import EventStreamDecoder, StreamEvent, format_done, format_event

logger = logging.getLogger("Zeno")

IDENTITY_QUERY = re.compile(r"who are you|what is your name|who created you|who made you", re.IGNORECASE)


def build_system_prompt(request: ChatRequest, search: Optional[SearchContext] = None) -> str:
    """Identity rules + what we know about the user + optional modes + custom instructions."""
    sections = [config.ZENO_SYSTEM_PROMPT.rstrip()]

    about = ["ABOUT THE USER:", f"- Name: {request.user_name}"]
    if request.user_gender and request.user_gender != "not-specified":
        about.append(f"- Identity: {request.user_gender}")
    memories = [m for m in request.memories if m.strip()]
    if memories:
        about.append("- PERSISTENT MEMORY CONTEXT:")
        about.extend(f"  * {m}" for m in memories)
    sections.append("\n".join(about))

    if request.thinking_enabled:
        sections.append(config.THINKING_MODE_PROMPT)
    if search is not None:
        sections.append(search.as_prompt_section())
    if request.custom_prompt:
        sections.append(f"Additional User Instructions:\n{request.custom_prompt}")

    return "\n\n".join(sections)


def usable_messages(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep only messages whose content is text or a list of content parts."""
    return [m for m in messages if isinstance(m.get("content"), (str, list))]


def is_identity_query(messages: List[Dict[str, Any]]) -> bool:
    if not messages:
        return False
    content = messages[-1].get("content")
    return isinstance(content, str) and bool(IDENTITY_QUERY.search(content))


def extract_delta(event: StreamEvent) -> str:
    """Text delta of one provider frame (choices[0].delta.content), or "" to skip it."""
    try:
        payload = event.json()
    except ValueError:
        logger.debug("Skipping malformed upstream frame: %.80s", event.data)
        return ""
    if not isinstance(payload, dict):
        return ""
    if "error" in payload:
        logger.warning("Provider sent an in-stream error: %s", payload["error"])
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class ChatRelay:

    def __init__(self, openrouter: OpenRouterService, search_service: Optional[SearchService] = None):
        self.openrouter = openrouter
        self.search_service = search_service

    def prepare_messages(self, request: ChatRequest, search: Optional[SearchContext] = None) -> List[Dict[str, Any]]:
        """System preamble first, then the conversation, then optional extra system context."""
        messages = usable_messages(request.messages)
        if search is not None:
            messages.append(search.as_context_message())
        prepared = [{"role": "system", "content": build_system_prompt(request, search)}] + messages
        if is_identity_query(messages):
            prepared.append({"role": "system", "content": config.IDENTITY_QUERY_PROMPT})
        return prepared

    async def open(self, request: ChatRequest) -> httpx.Response:
        # Fail on a missing key before spending a web search on the request.
        self.openrouter.require_api_key()

        search = None
        if request.enable_web_search and self.search_service is not None and self.search_service.enabled:
            search = await asyncio.to_thread(self.search_service.build_context, request.messages)

        messages = self.prepare_messages(request, search)
        return await self.openrouter.open_stream(request.model, messages)

    async def stream(self, upstream: httpx.Response) -> AsyncIterator[str]:
        relayed = 0
        try:
            async for delta in self._deltas(upstream):
                relayed += 1
                yield format_event({"content": delta})
        except Exception as e:
            logger.error("Upstream stream interrupted after %s deltas: %s", relayed, e)
        finally:
            await upstream.aclose()
        logger.info("Relayed %s deltas", relayed)
        yield format_done()

    async def _deltas(self, upstream: httpx.Response) -> AsyncIterator[str]:
        decoder = EventStreamDecoder()
        async for chunk in upstream.aiter_bytes():
            for event in decoder.feed(chunk):
                if event.is_done:
                    return
                delta = extract_delta(event)
                if delta:
                    yield delta
        for event in decoder.flush():
            if event.is_done:
                return
            delta = extract_delta(event)
            if delta:
                yield delta
