"""
Embedding Capability

This module defines the contract the corpus index uses to turn text into
vectors, plus two interchangeable backends:

- OpenAIEmbedder: the OpenAI embeddings API (or any compatible provider),
  with batching, transport error isolation and strict response validation.
- HashingEmbedder: a deterministic, offline bag-of-words embedder used for
  local runs and tests.

Both are stateless apart from their HTTP client and safe to reuse across
requests.
"""

from __future__ import annotations

from typing import List, Sequence, Optional, Protocol
import hashlib
import logging
import math
import re

import httpx

from ..core.errors import NotReadyError, RetrievalFailure

logger = logging.getLogger("newsrag.embedder")

_TOKEN_RE = re.compile(r"\w+")


class EmbeddingEngine(Protocol):
    """Anything that can embed a batch of texts."""

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Return one vector per input text, in input order."""
        ...


class OpenAIEmbedder:
    """
    Asynchronous embedding generator backed by an OpenAI-compatible API.

    The HTTP client is a process-scoped resource owned by the caller; this
    class never opens or closes it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        batch_size: int = 20,
    ) -> None:
        """
        Initialize an OpenAIEmbedder.

        Parameters
        ----------
        client : httpx.AsyncClient
            Shared HTTP client. Its timeout bounds every request.

        api_key : str
            Bearer token for the provider.

        model : str
            Embedding model name.

        base_url : str
            Base URL of the API; ``/embeddings`` is appended.

        batch_size : int
            Maximum texts per request. Helps avoid API token/size limits.
        """
        self._client = client
        self._api_key = api_key
        self.model = model
        self.url = base_url.rstrip("/") + "/embeddings"
        self.batch_size = batch_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts.

        Raises
        ------
        NotReadyError
            If the provider reports it is temporarily unavailable (HTTP 503).

        RetrievalFailure
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {"Authorization": f"Bearer {self._api_key}"}

        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            payload = {
                "model": self.model,
                "input": batch,
            }

            try:
                response = await self._client.post(
                    self.url,
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 503:
                    raise NotReadyError("Embedding service is warming up") from exc
                logger.error(
                    "Embedding request rejected: batch size=%d, status=%d",
                    len(batch),
                    exc.response.status_code,
                )
                raise RetrievalFailure(
                    f"Embedding generation failed: HTTP {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): batch size=%d, error=%s",
                    type(exc).__name__,
                    len(batch),
                    str(exc),
                )
                raise RetrievalFailure(
                    f"Embedding generation failed: {type(exc).__name__}"
                ) from exc

            embeddings = self._extract_embeddings(response.json())
            if len(embeddings) != len(batch):
                raise RetrievalFailure(
                    f"Expected {len(batch)} embeddings, got {len(embeddings)}."
                )
            all_embeddings.extend(embeddings)

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }
        """
        if not isinstance(data, dict) or "data" not in data:
            raise RetrievalFailure("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise RetrievalFailure("'data' field must be a list.")

        records = sorted(
            records,
            key=lambda r: r.get("index", 0) if isinstance(r, dict) else 0,
        )
        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise RetrievalFailure(
                    f"Malformed embedding record at index {index}."
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise RetrievalFailure(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings


class HashingEmbedder:
    """
    Deterministic term-frequency embedder using the hashing trick.

    Lowercased word tokens are hashed with MD5 into ``dim`` buckets, so the
    same text maps to the same vector in every process. Texts sharing no
    tokens are (barring bucket collisions) orthogonal.
    """

    def __init__(self, dim: int = 1024) -> None:
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = dim

    def _bucket(self, token: str) -> int:
        digest = hashlib.md5(token.encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") % self.dim

    def embed_one(self, text: str) -> List[float]:
        vector = [0.0] * self.dim
        for token in _TOKEN_RE.findall(text.lower()):
            vector[self._bucket(token)] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm:
            vector = [v / norm for v in vector]
        return vector

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed_one(text) for text in texts]
