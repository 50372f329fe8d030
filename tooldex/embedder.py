from dataclasses import dataclass

import litellm
import numpy as np

from tooldex.constants import EMBEDDING_BATCH_SIZE, EMBEDDING_MODELS, EMBEDDING_TEXT_LIMIT
from tooldex.errors import ConfigurationError, PermanentStoreError


@dataclass(frozen=True)
class EmbeddingConfig:
    model: str
    dim: int

    @classmethod
    def for_model(cls, model: str) -> "EmbeddingConfig":
        if model not in EMBEDDING_MODELS:
            raise ConfigurationError(f"Unsupported embedding model: {model}")
        return cls(model=model, dim=EMBEDDING_MODELS[model])


def prepare_text(text: str) -> str:
    # providers reject empty input
    text = text.strip()[:EMBEDDING_TEXT_LIMIT]
    return text or " "


class Embedder:
    """Unit-length embeddings from a litellm provider, batched and shape-checked."""

    def __init__(self, config: EmbeddingConfig, batch_size: int = EMBEDDING_BATCH_SIZE):
        self.config = config
        self.batch_size = batch_size

    @property
    def dim(self) -> int:
        return self.config.dim

    async def _embed_batch(self, texts: list[str]) -> np.ndarray:
        response = await litellm.aembedding(model=self.config.model, input=texts)
        rows = sorted(response.data, key=lambda item: item["index"])
        matrix = np.array([item["embedding"] for item in rows], dtype=np.float64)
        if matrix.shape != (len(texts), self.dim):
            raise PermanentStoreError(
                f"{self.config.model} returned embeddings of shape {matrix.shape}, expected ({len(texts)}, {self.dim})"
            )
        return matrix

    async def embed(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.empty((0, self.dim))
        prepared = [prepare_text(t) for t in texts]
        chunks = [
            await self._embed_batch(prepared[i : i + self.batch_size])
            for i in range(0, len(prepared), self.batch_size)
        ]
        matrix = np.vstack(chunks)
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        return matrix / np.where(norms == 0, 1, norms)

    async def embed_one(self, text: str) -> np.ndarray:
        return (await self.embed([text]))[0]
