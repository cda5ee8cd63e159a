from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
import html
from typing import Literal, Protocol

from fastapi import WebSocketDisconnect
from loguru import logger
from markdown_it import MarkdownIt

from docchat.services.rag.types import Answer

Speaker = Literal["user", "assistant"]
TurnStatus = Literal["ok", "error"]

DATA_MARKER = "/data/"

_markdown = MarkdownIt("commonmark", {"html": False})


@dataclass(frozen=True)
class ChatTurn:
    speaker: Speaker
    text: str
    status: TurnStatus = "ok"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class Listener(Protocol):
    async def send_json(self, data: object, mode: str = "text") -> None: ...


def corpus_relative_path(source_path: str) -> str:
    """Strip everything up to and including the first ``/data/`` segment."""
    marker_index = source_path.find(DATA_MARKER)
    if marker_index == -1:
        return source_path
    return source_path[marker_index + len(DATA_MARKER) :]


def render_answer(answer: Answer) -> str:
    rendered = _markdown.render(answer.text)
    if not answer.source_documents:
        return rendered
    source = corpus_relative_path(answer.source_documents[0].source_path)
    return f"{rendered}<p>Source: {html.escape(source)}</p>"


class ChatSession:
    """Append-only chat history broadcast to every connected listener."""

    def __init__(self) -> None:
        self._history: list[ChatTurn] = []
        self._listeners: set[Listener] = set()
        self._lock = asyncio.Lock()

    @property
    def history(self) -> list[ChatTurn]:
        return list(self._history)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def connect(self, listener: Listener) -> None:
        self._listeners.add(listener)

    def disconnect(self, listener: Listener) -> None:
        self._listeners.discard(listener)

    async def publish(self, turn: ChatTurn) -> None:
        async with self._lock:
            self._history.append(turn)
            payload = turn.to_dict()
            for listener in list(self._listeners):
                try:
                    await listener.send_json(payload)
                except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                    logger.warning("Dropping chat listener after failed send: {}", exc)
                    self._listeners.discard(listener)
