"""
STREAM CONSUMER
===============

Client side of the chat stream. Reads the relay's event stream chunk by chunk,
reassembles `data:` frames split across reads (same decoder as the relay) and
publishes the growing answer after every delta so it can be rendered
incrementally.

If the connection breaks mid-answer, whatever was received so far is the final
answer; only a stream that broke before the first delta raises.
"""

import logging
from typing import AsyncIterable, Callable, Optional, Union

from zeno.utils.event_stream import EventStreamDecoder, StreamEvent

logger = logging.getLogger("Zeno")


def content_of(event: StreamEvent) -> str:
    try:
        payload = event.json()
    except ValueError:
        logger.debug("Skipping malformed relay frame: %.80s", event.data)
        return ""
    if not isinstance(payload, dict):
        return ""
    content = payload.get("content")
    return content if isinstance(content, str) else ""


class StreamConsumer:
    """One consumer per response: `text = await StreamConsumer(on_update).consume(chunks)`."""

    def __init__(self, on_update: Optional[Callable[[str], None]] = None):
        self.on_update = on_update
        self.text = ""

    def _apply(self, event: StreamEvent) -> None:
        delta = content_of(event)
        if not delta:
            return
        self.text += delta
        if self.on_update is not None:
            self.on_update(self.text)

    async def consume(self, chunks: AsyncIterable[Union[bytes, str]]) -> str:
        decoder = EventStreamDecoder()
        try:
            async for chunk in chunks:
                for event in decoder.feed(chunk):
                    if event.is_done:
                        return self.text
                    self._apply(event)
            for event in decoder.flush():
                if event.is_done:
                    break
                self._apply(event)
        except Exception as e:
            if not self.text:
                raise
            logger.warning("Stream broke after %s characters, keeping the partial answer: %s", len(self.text), e)
        return self.text
