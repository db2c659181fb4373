"""
Sentence-transformers embedding provider.

Loads the model on connect and offloads it on disconnect. Encoding is CPU/GPU
bound, so it runs in the default executor to keep the event loop free.
"""

import asyncio
import gc
import logging
from functools import partial

from regsearch.server.services import EmbeddingProviderHandler

logger = logging.getLogger(__name__)


# -------------------------------------------------------------- #
# Sentence Transformer Provider
# -------------------------------------------------------------- #


class SentenceTransformerProvider(EmbeddingProviderHandler):
    """Embedding provider backed by a sentence-transformers model."""

    def __init__(
        self,
        name: str = "sentence_transformers",
        model_name: str = "intfloat/multilingual-e5-large",
        batch_size: int = 32,
        normalize_embeddings: bool = True,
    ):
        """
        Initialize the embedding provider.

        Args:
            name: Name of the server handler
            model_name: Name of the sentence-transformers model to use
            batch_size: Batch size for encoding
            normalize_embeddings: Whether to L2-normalize embeddings
        """
        super().__init__(name, model_name)
        self.batch_size = batch_size
        self.normalize_embeddings = normalize_embeddings
        self.model = None

    # -------------------------------------------------------------- #
    # Connection Management
    # -------------------------------------------------------------- #

    async def connect(self) -> None:
        """Load the embedding model."""
        try:
            loop = asyncio.get_running_loop()
            self.model = await loop.run_in_executor(None, self._load_model)
            self._connected = True
            logger.info(f"[{self.name}] Loaded embedding model '{self.model_name}'")
        except Exception as e:
            logger.error(f"[{self.name}] Failed to load model '{self.model_name}': {e}")
            self._connected = False
            raise

    async def disconnect(self) -> None:
        """Offload the model and free memory."""
        if self.model is not None:
            # Try to move to CPU first
            if hasattr(self.model, "to"):
                try:
                    self.model.to("cpu")
                except Exception as e:
                    logger.warning(f"[{self.name}] Could not move model to CPU: {e}")
            self.model = None

        gc.collect()

        try:
            import torch

            if torch.cuda.is_available():
                torch.cuda.empty_cache()
        except ImportError:
            pass

        self._connected = False
        logger.info(f"[{self.name}] Offloaded embedding model")

    async def health_check(self) -> bool:
        return self.model is not None

    # -------------------------------------------------------------- #
    # Encoding
    # -------------------------------------------------------------- #

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if self.model is None:
            raise RuntimeError(f"[{self.name}] Model is not loaded. Call connect() first.")

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(self._encode, texts))
        except Exception as e:
            logger.error(f"[{self.name}] Encoding {len(texts)} texts failed: {e}")
            raise

    def _load_model(self):
        from sentence_transformers import SentenceTransformer

        return SentenceTransformer(self.model_name)

    def _encode(self, texts: list[str]) -> list[list[float]]:
        embeddings = self.model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=self.normalize_embeddings,
            show_progress_bar=False,
        )
        return embeddings.tolist()
