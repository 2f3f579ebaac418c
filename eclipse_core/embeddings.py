"""
Embedding Service - Turning text into meaning-vectors.

The model is loaded lazily (first embed() call), in a worker thread so
the event loop keeps answering. If loading fails we retry with
exponential backoff; after the last attempt the service is "degraded"
for the rest of the process and embed() just returns None. Search then
falls back to plain substring matching.

Vectors are float32, L2-normalized, so cosine similarity is a dot product.
They are stored in SQLite as raw float32 bytes.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger("eclipse_core.embeddings")

DEFAULT_MODEL = "all-MiniLM-L6-v2"   # 384 dims, ~90MB download on first use


# =============================================================================
# VECTOR CODEC
# =============================================================================

def encode_vector(vector: Optional[np.ndarray]) -> Optional[bytes]:
    if vector is None:
        return None
    return np.asarray(vector, dtype=np.float32).tobytes()


def decode_vector(blob: Optional[bytes]) -> Optional[np.ndarray]:
    """Bytes back to a float32 vector. Corrupt blobs decode as None."""
    if not blob:
        return None
    if len(blob) % 4 != 0:
        logger.warning(f"Ignoring corrupt embedding ({len(blob)} bytes, not float32 aligned)")
        return None
    return np.frombuffer(blob, dtype=np.float32)


def normalize(vector: np.ndarray) -> np.ndarray:
    vector = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector
    return vector / norm


def cosine_similarity(a: Optional[np.ndarray], b: Optional[np.ndarray]) -> float:
    """Cosine of two normalized vectors; 0 if either is missing or shapes differ."""
    if a is None or b is None or a.shape != b.shape:
        return 0.0
    return float(np.dot(a, b))


def embedding_text(title: str, content: str) -> str:
    """What we embed for a memory."""
    return f"{title}\n{content}"


# =============================================================================
# SERVICE
# =============================================================================

def load_sentence_transformer(model_name: str, cache_dir: Path):
    """Default loader: a sentence-transformers model, cached on disk."""
    from sentence_transformers import SentenceTransformer

    cache_dir.mkdir(parents=True, exist_ok=True)
    return SentenceTransformer(model_name, cache_folder=str(cache_dir))


class EmbeddingService:
    """Lazy, retrying, degradable text encoder.

    Usage:
        service = EmbeddingService(cache_dir=Path("~/.eclipse-agent/.cache/models"))
        vector = await service.embed("How do we deploy?")   # None if degraded
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        cache_dir: Optional[Path] = None,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        max_chars: int = 2000,
        loader: Optional[Callable] = None,
    ):
        self.model_name = model_name
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / ".eclipse-agent" / ".cache" / "models"
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.max_chars = max_chars
        self._loader = loader or load_sentence_transformer

        self._model = None
        self._load_task: Optional[asyncio.Task] = None
        self.degraded = False
        self.load_attempts = 0

    @property
    def ready(self) -> bool:
        return self._model is not None

    async def _load_with_retries(self):
        for attempt in range(self.max_attempts):
            self.load_attempts += 1
            try:
                model = await asyncio.to_thread(self._loader, self.model_name, self.cache_dir)
                logger.info(f"Loaded embedding model {self.model_name}")
                return model
            except Exception as e:
                if attempt + 1 >= self.max_attempts:
                    logger.warning(
                        f"Embedding model failed to load after {self.max_attempts} attempts, "
                        f"falling back to keyword search: {e}"
                    )
                    return None
                delay = (2 ** attempt) * self.retry_delay
                logger.info(
                    f"Retrying embedding model load (attempt {attempt + 1}/{self.max_attempts}) "
                    f"after {delay}s: {e}"
                )
                await asyncio.sleep(delay)
        return None

    async def _ensure_model(self):
        if self._model is not None or self.degraded:
            return self._model

        # Concurrent callers wait on the same load
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load_with_retries())
        model = await self._load_task

        if model is None:
            self.degraded = True
        else:
            self._model = model
        return self._model

    async def embed(self, text: str) -> Optional[np.ndarray]:
        """Encode text into a normalized float32 vector, or None."""
        model = await self._ensure_model()
        if model is None:
            return None

        text = (text or "")[: self.max_chars]
        try:
            raw = await asyncio.to_thread(model.encode, text, normalize_embeddings=True)
        except Exception as e:
            logger.warning(f"Embedding failed, continuing without a vector: {e}")
            return None
        return normalize(raw)

    def status(self) -> dict:
        if self.ready:
            state = "ready"
        elif self.degraded:
            state = "degraded"
        else:
            state = "not loaded"
        return {"model": self.model_name, "state": state, "load_attempts": self.load_attempts}
