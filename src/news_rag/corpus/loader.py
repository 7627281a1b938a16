"""
Load the news corpus produced by the ingestion pipeline.

The pipeline writes a JSON array of ``{title, content, url, publishedAt}``
objects. Items without a title or content are skipped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List

from .models import Article

logger = logging.getLogger("newsrag.corpus")


class CorpusLoadError(RuntimeError):
    """Raised when the corpus file cannot be read or is not a JSON array."""


def parse_articles(items: List[Any]) -> List[Article]:
    articles: List[Article] = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning("Skipping corpus item %d: not an object", position)
            continue

        title = str(item.get("title") or "").strip()
        content = str(item.get("content") or "").strip()
        if not title or not content:
            logger.warning("Skipping corpus item %d: missing title or content", position)
            continue

        articles.append(
            Article(
                id=len(articles),
                title=title,
                content=content,
                url=item.get("url"),
                published_at=item.get("publishedAt"),
            )
        )
    return articles


def load_articles(path: str | Path) -> List[Article]:
    """
    Read and validate the corpus file at ``path``.

    Raises
    ------
    CorpusLoadError
        If the file is missing, unreadable, or not a JSON array.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise CorpusLoadError(
            f"Failed to read corpus {path}: {type(exc).__name__}"
        ) from exc

    if not isinstance(data, list):
        raise CorpusLoadError(f"Corpus {path} must contain a JSON array.")

    articles = parse_articles(data)
    logger.info("Loaded %d articles from %s", len(articles), path)
    return articles
