"""
EVENT STREAM DECODER
====================

Line-delimited `data:` frame decoder shared by the server relay (reading the
provider's stream) and the client consumer (reading the relay's stream).

The transport delivers arbitrary byte chunks: a chunk may end in the middle of
a line, of a JSON token or of a multi-byte UTF-8 character. The decoder keeps a
rolling text buffer, emits one StreamEvent per complete `data: ` line and keeps
the trailing partial line until more bytes arrive (or flush() is called at the
end of the stream). Feeding a stream in one chunk or one byte at a time yields
the same events.

  decoder = EventStreamDecoder()
  for chunk in chunks:
      for event in decoder.feed(chunk):
          ...
  for event in decoder.flush():
      ...
"""

import codecs
import json
from dataclasses import dataclass
from typing import Any, List, Union


DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    """One `data: ` payload. `data` is the text after the prefix, stripped."""

    data: str

    @property
    def is_done(self) -> bool:
        return self.data == DONE_SENTINEL

    def json(self) -> Any:
        """Parse the payload; raises ValueError (json.JSONDecodeError) if it is not JSON."""
        return json.loads(self.data)


def format_event(payload: Any) -> str:
    """Serialize one outgoing frame: `data: <json>` followed by a blank line."""
    return f"{DATA_PREFIX}{json.dumps(payload)}\n\n"


def format_done() -> str:
    return f"{DATA_PREFIX}{DONE_SENTINEL}\n\n"


class EventStreamDecoder:
    """Incremental decoder: feed() raw chunks, get back the complete events."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> List[StreamEvent]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        lines = self._buffer.split("\n")
        # The last element is either "" (buffer ended on a newline) or a partial line.
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> List[StreamEvent]:
        """Process whatever is left once the stream has ended."""
        rest = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._parse_lines(rest.split("\n"))

    @staticmethod
    def _parse_lines(lines: List[str]) -> List[StreamEvent]:
        events = []
        for raw in lines:
            line = raw.strip()
            if not line or not line.startswith(DATA_PREFIX):
                continue
            events.append(StreamEvent(line[len(DATA_PREFIX):].strip()))
        return events
