"""
Embedding boundary.

The index only needs ``embed(texts) -> vectors``; the default adapter wraps
sentence-transformers and loads the model lazily on first use.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, Sequence

from videomem.config import EmbeddingConfig
from videomem.logging_utils import get_component_logger

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer


class Embedder(Protocol):
    """Anything that maps texts to fixed-dimension vectors."""

    def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


class SentenceTransformerEmbedder:
    """
    Embeds text with a sentence-transformers model.

    Usage:
        embedder = SentenceTransformerEmbedder("sentence-transformers/all-MiniLM-L6-v2")
        vectors = embedder.embed(["first chunk", "second chunk"])
    """

    def __init__(
        self,
        model_name: str,
        device: str = "cpu",
        normalize: bool = True,
        batch_size: int = 32,
        logger: logging.Logger | None = None,
    ):
        self.model_name = model_name
        self.device = device
        self.normalize = normalize
        self.batch_size = batch_size
        self.logger = get_component_logger("embedding", logger)

        # Lazy load
        self._model: SentenceTransformer | None = None

    @property
    def model(self) -> SentenceTransformer:
        """Get or load the embedding model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self.logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    @property
    def dimension(self) -> int | None:
        """Output dimension reported by the model."""
        return self.model.get_sentence_embedding_dimension()

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        vectors = self.model.encode(
            list(texts),
            batch_size=self.batch_size,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
        )
        return vectors.tolist()


def create_embedder(
    config: EmbeddingConfig,
    logger: logging.Logger | None = None,
) -> SentenceTransformerEmbedder:
    """Build the default embedder from configuration."""
    return SentenceTransformerEmbedder(
        model_name=config.model,
        device=config.device,
        normalize=config.normalize,
        batch_size=config.batch_size,
        logger=logger,
    )
