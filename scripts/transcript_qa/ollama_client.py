from __future__ import annotations

import json
import logging
import re
from typing import Iterator

import requests

from .config import DEFAULT_EMBED_MODEL, DEFAULT_OLLAMA_MODEL, DEFAULT_OLLAMA_URL
from .errors import ClientError
from .interfaces import ChatChunk, ChatMessage, LlmClient

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Ollama client
# ---------------------------------------------------------------------------

class OllamaClient(LlmClient):
    """Streaming chat and batched embeddings against a local Ollama server.

    ``/api/chat`` is consumed as newline-delimited JSON; ``/api/embed`` takes
    the whole batch in one request.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_OLLAMA_MODEL,
        embed_model: str = DEFAULT_EMBED_MODEL,
        *,
        temperature: float = 0.1,
        num_ctx: int = 32768,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.embed_model = embed_model
        self.temperature = temperature
        self.num_ctx = num_ctx
        self.session = session or requests.Session()

    def stream_chat(self, messages: list[ChatMessage], *, timeout: float) -> Iterator[ChatChunk]:
        payload = {
            "model": self.model,
            "messages": [m.as_dict() for m in messages],
            "stream": True,
            "options": {
                "num_ctx": self.num_ctx,
                "temperature": self.temperature,
            },
        }
        try:
            with self.session.post(
                f"{self.base_url}/api/chat",
                json=payload,
                stream=True,
                timeout=(CONNECT_TIMEOUT, timeout),
            ) as resp:
                resp.raise_for_status()
                for line in resp.iter_lines(decode_unicode=True):
                    if not line:
                        continue
                    try:
                        body = json.loads(line)
                    except json.JSONDecodeError as exc:
                        raise ClientError(f"Bad stream line from Ollama: {line[:120]!r}") from exc
                    if body.get("error"):
                        raise ClientError(f"Ollama error: {body['error']}")
                    content = (body.get("message") or {}).get("content") or ""
                    if content:
                        yield ChatChunk("content", content)
                    if body.get("done"):
                        yield ChatChunk("done")
                        return
        except requests.RequestException as exc:
            raise ClientError(f"Ollama chat request failed: {exc}") from exc
        # connection closed without a done marker
        yield ChatChunk("done")

    def embed_texts(self, texts: list[str], *, timeout: float) -> list[list[float]]:
        if not texts:
            return []
        try:
            resp = self.session.post(
                f"{self.base_url}/api/embed",
                json={"model": self.embed_model, "input": list(texts)},
                timeout=(CONNECT_TIMEOUT, timeout),
            )
            resp.raise_for_status()
            vectors = resp.json().get("embeddings")
        except (requests.RequestException, ValueError) as exc:
            raise ClientError(f"Ollama embed request failed: {exc}") from exc
        if not isinstance(vectors, list) or len(vectors) != len(texts):
            raise ClientError(
                f"Ollama returned {len(vectors) if isinstance(vectors, list) else 'no'} "
                f"embeddings for {len(texts)} inputs"
            )
        logger.debug("Embedded %d text(s) with %s", len(texts), self.embed_model)
        return vectors


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def extract_json_object(text: str) -> dict | None:
    """Pull a JSON object out of LLM output (fences and chatter tolerated)."""
    text = (text or "").strip()
    text = re.sub(r"^```(?:json)?\s*", "", text)
    text = re.sub(r"\s*```$", "", text)
    text = text.strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", text, flags=re.DOTALL)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None
