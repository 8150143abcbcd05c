"""Local sentence-transformers embedding backend.

Requires the ``local`` extra (``sentence-transformers``).  The model is
loaded lazily on first use, so importing this module stays cheap.
"""

from __future__ import annotations

import logging
import time

from .config import DEFAULT_LOCAL_EMBED_MODEL
from .interfaces import EmbeddingClient

logger = logging.getLogger(__name__)

BATCH_SIZE = 64


class SentenceTransformerEmbeddingClient(EmbeddingClient):
    def __init__(self, model_name: str = DEFAULT_LOCAL_EMBED_MODEL):
        self.model_name = model_name
        self._model = None

    def _load_model(self):
        """Load the sentence-transformers model (downloads on first run)."""
        from sentence_transformers import SentenceTransformer

        logger.info("Loading embedding model: %s", self.model_name)
        t0 = time.time()
        model = SentenceTransformer(self.model_name)
        logger.info("Model loaded in %.1fs", time.time() - t0)
        return model

    def embed_texts(self, texts: list[str], *, timeout: float) -> list[list[float]]:
        # encoding runs in-process, so the timeout has nothing to interrupt
        if not texts:
            return []
        if self._model is None:
            self._model = self._load_model()
        embeddings = self._model.encode(
            list(texts),
            batch_size=BATCH_SIZE,
            show_progress_bar=False,
            normalize_embeddings=True,
            convert_to_numpy=True,
        )
        return embeddings.tolist()
