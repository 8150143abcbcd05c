"""Collaborator interfaces consumed by the engine.

The engine needs two capabilities from its language-model backend: a
streaming chat completion and a batched text embedding.  Real clients
(:class:`~transcript_qa.ollama_client.OllamaClient`) and test doubles are
plain implementations of these abstract classes.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional

from .errors import QueryCancelled


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def as_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatChunk:
    """One increment of a streamed completion; ``type`` is content or done."""

    type: str
    content: str = ""


class CompletionClient(ABC):
    @abstractmethod
    def stream_chat(
        self, messages: list[ChatMessage], *, timeout: float
    ) -> Iterator[ChatChunk]:
        """Yield content chunks, terminated by a ``done`` chunk."""


class EmbeddingClient(ABC):
    @abstractmethod
    def embed_texts(self, texts: list[str], *, timeout: float) -> list[list[float]]:
        """Return one vector per input text, in input order."""


class LlmClient(CompletionClient, EmbeddingClient):
    """A backend offering both capabilities."""


class CompositeClient(LlmClient):
    """Pair a completion backend with a separate embedding backend."""

    def __init__(self, completion: CompletionClient, embedding: EmbeddingClient):
        self.completion = completion
        self.embedding = embedding

    def stream_chat(self, messages, *, timeout):
        return self.completion.stream_chat(messages, timeout=timeout)

    def embed_texts(self, texts, *, timeout):
        return self.embedding.embed_texts(texts, timeout=timeout)


# ---------------------------------------------------------------------------
# Stream consumption
# ---------------------------------------------------------------------------

def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise QueryCancelled("Query cancelled by caller")


def collect_stream(
    client: CompletionClient,
    messages: list[ChatMessage],
    *,
    timeout: float,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Drain a streamed completion into one string.

    The deadline is checked between chunks; on timeout or cancellation the
    underlying generator is closed so the client can release its connection.
    Raises ``TimeoutError`` when the deadline passes before ``done``.
    """
    check_cancelled(cancel_event)
    deadline = time.monotonic() + timeout
    stream = client.stream_chat(messages, timeout=timeout)
    parts: list[str] = []
    try:
        for chunk in stream:
            check_cancelled(cancel_event)
            if time.monotonic() > deadline:
                raise TimeoutError(f"Completion exceeded {timeout:.1f}s")
            if chunk.type == "done":
                break
            if chunk.type == "content" and chunk.content:
                parts.append(chunk.content)
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            close()
    return "".join(parts).strip()
