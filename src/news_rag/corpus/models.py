"""
Corpus Data Models

Each Article corresponds to ONE item produced by the news ingestion pipeline
and ONE row of the CorpusIndex embedding matrix.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class Article(BaseModel):
    """
    A single ingested news article.

    Immutable once created; owned by the CorpusIndex for the process lifetime.
    """

    id: int = Field(
        ...,
        ge=0,
        description="Ingestion position; used as the ranking tie-breaker.",
    )

    title: str = Field(..., min_length=1)

    content: str = Field(..., min_length=1)

    url: Optional[str] = None

    published_at: Optional[str] = Field(
        default=None,
        description="Publication timestamp as emitted by the feed.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class SimilarityHit(BaseModel):
    """An article paired with its cosine similarity to a query."""

    article: Article
    score: float = Field(..., ge=-1.0, le=1.0)

    model_config = ConfigDict(frozen=True)
