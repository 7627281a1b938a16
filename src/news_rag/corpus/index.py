"""
Corpus Index

In-memory nearest-neighbour search over the fixed, pre-ingested article set.

Key Properties
--------------
- One embedding per article, computed once by build() at startup
- Exact cosine similarity against every stored row (numpy)
- Stable ranking: equal scores keep ingestion order
- Zero-magnitude vectors score 0 instead of dividing by zero
- Queries before build() completes fail fast with NotReadyError
- A build that failed for good is recorded with mark_failed(); queries then
  fail with RetrievalFailure instead of reporting a warm-up forever
- Read-only after build, so safe to share across concurrent requests
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from .models import Article, SimilarityHit
from ..core.errors import NewsRagError, NotReadyError, RetrievalFailure
from ..embeddings.embedder import EmbeddingEngine

logger = logging.getLogger("newsrag.corpus")


class CorpusIndexError(RuntimeError):
    """Raised when the index is misused (e.g. built twice)."""


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    # Zero rows stay zero, which makes their cosine score 0.
    safe = np.where(norms == 0.0, 1.0, norms)
    return matrix / safe


class CorpusIndex:
    """
    Exact cosine-similarity index over a fixed article list.
    """

    def __init__(self, embedder: EmbeddingEngine, batch_size: int = 64) -> None:
        self._embedder = embedder
        self._batch_size = batch_size

        self._articles: List[Article] = []
        self._matrix: Optional[np.ndarray] = None
        self._ready = False
        self._building = False
        self._failure: Optional[str] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def failed(self) -> bool:
        return self._failure is not None

    @property
    def size(self) -> int:
        return len(self._articles)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def build(self, articles: Sequence[Article]) -> None:
        """
        Embed every article and make the index queryable.

        Runs once. The article list and the resulting matrix are read-only
        afterwards.

        Raises
        ------
        CorpusIndexError
            If called more than once.

        NotReadyError, RetrievalFailure
            Propagated from the embedding capability.
        """
        if self._ready or self._building:
            raise CorpusIndexError("CorpusIndex.build() may only run once.")
        self._building = True

        try:
            articles = list(articles)
            vectors: List[List[float]] = []

            for start in range(0, len(articles), self._batch_size):
                batch = articles[start : start + self._batch_size]
                vectors.extend(await self._embedder.embed([a.content for a in batch]))
                logger.debug("Embedded %d/%d articles", len(vectors), len(articles))

            if len(vectors) != len(articles):
                raise RetrievalFailure(
                    f"Embedding count {len(vectors)} does not match article count {len(articles)}."
                )

            if articles:
                matrix = np.asarray(vectors, dtype="float32")
                if matrix.ndim != 2 or matrix.shape[1] == 0:
                    raise RetrievalFailure("Inconsistent or empty article embeddings.")
                matrix = _normalize_rows(matrix)
                matrix.setflags(write=False)
                self._matrix = matrix

            self._articles = articles
            self._ready = True
        finally:
            self._building = False

        logger.info("Corpus index ready with %d articles", len(self._articles))

    def mark_failed(self, reason: str) -> None:
        """
        Record that the corpus will never become available in this process.
        """
        if self._ready:
            raise CorpusIndexError("Cannot mark a built index as failed.")
        self._failure = reason

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    async def query(self, text: str, k: int) -> List[SimilarityHit]:
        """
        Return the k articles most similar to ``text``, best first.

        Parameters
        ----------
        text : str
            Free-form query text.

        k : int
            Number of hits. ``k <= 0`` yields an empty list; ``k`` larger
            than the corpus yields every article ranked.

        Raises
        ------
        NotReadyError
            If build() has not completed or the embedder is warming up.

        RetrievalFailure
            If embedding or scoring fails, or the build failed for good.
        """
        if self._failure is not None:
            raise RetrievalFailure(f"Corpus index is unavailable: {self._failure}")
        if not self._ready:
            raise NotReadyError("Corpus index is still being built")

        if k <= 0 or self._matrix is None:
            return []

        try:
            vectors = await self._embedder.embed([text])
        except NewsRagError:
            raise
        except Exception as exc:
            raise RetrievalFailure(
                f"Query embedding failed: {type(exc).__name__}"
            ) from exc

        if len(vectors) != 1:
            raise RetrievalFailure("Embedder returned no vector for the query.")

        query = np.asarray(vectors[0], dtype="float32")
        if query.ndim != 1 or query.shape[0] != self._matrix.shape[1]:
            raise RetrievalFailure(
                f"Query dimension {query.shape} does not match corpus dimension "
                f"{self._matrix.shape[1]}."
            )

        norm = float(np.linalg.norm(query))
        if norm == 0.0:
            scores = np.zeros(len(self._articles), dtype="float32")
        else:
            scores = self._matrix @ (query / norm)
        scores = np.clip(scores, -1.0, 1.0)

        order = np.argsort(-scores, kind="stable")[:k]

        return [
            SimilarityHit(article=self._articles[int(i)], score=float(scores[int(i)]))
            for i in order
        ]
