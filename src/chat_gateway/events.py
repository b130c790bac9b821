from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import ClassVar

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


@dataclass(frozen=True)
class SessionStarted:
    conversation_id: str
    turn_id: str
    name: ClassVar[str] = "session"

    def payload(self) -> dict:
        return {"sessionId": self.conversation_id, "messageId": self.turn_id}


@dataclass(frozen=True)
class Token:
    text: str
    name: ClassVar[str] = "token"

    def payload(self) -> dict:
        return {"text": self.text}


@dataclass(frozen=True)
class Completed:
    tokens: int
    cost: int
    name: ClassVar[str] = "done"

    def payload(self) -> dict:
        return {"success": True, "tokens": self.tokens, "cost": self.cost}


@dataclass(frozen=True)
class Failed:
    message: str
    name: ClassVar[str] = "error"

    def payload(self) -> dict:
        return {"message": self.message}


OutwardEvent = SessionStarted | Token | Completed | Failed


def format_sse(event: OutwardEvent) -> str:
    data = json.dumps(event.payload(), ensure_ascii=False, separators=(",", ":"))
    return f"event: {event.name}\ndata: {data}\n\n"


def parse_event(name: str, data: dict) -> OutwardEvent:
    if name == "session":
        return SessionStarted(conversation_id=data["sessionId"], turn_id=data["messageId"])
    if name == "token":
        return Token(text=data["text"])
    if name == "done":
        return Completed(tokens=int(data["tokens"]), cost=int(data["cost"]))
    if name == "error":
        return Failed(message=data["message"])
    raise ValueError(f"Unknown event name: {name!r}")


class SseDecoder:
    """Incremental consumer-side decoder for the gateway's event stream.

    Chunks may split events (or UTF-8 sequences) anywhere; a block is parsed
    only once its terminating blank line has arrived.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, chunk: str | bytes) -> list[OutwardEvent]:
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text.replace("\r\n", "\n")
        *blocks, self._buffer = self._buffer.split("\n\n")

        events: list[OutwardEvent] = []
        for block in blocks:
            event = self._parse_block(block)
            if event is not None:
                events.append(event)
        return events

    @property
    def pending(self) -> str:
        return self._buffer

    def _parse_block(self, block: str) -> OutwardEvent | None:
        name: str | None = None
        data_lines: list[str] = []
        for line in block.split("\n"):
            if line.startswith("event:"):
                name = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data_lines.append(line[len("data:"):].strip())
        if name is None or not data_lines:
            return None
        return parse_event(name, json.loads("\n".join(data_lines)))
