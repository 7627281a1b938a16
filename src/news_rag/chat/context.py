"""
Context assembly: ranked similarity hits -> bounded prompt context.
"""

from __future__ import annotations

from typing import List, Sequence

from ..corpus.models import SimilarityHit

SENTENCE_BOUNDARY = ". "
SECTION_SEPARATOR = "\n\n"


def leading_sentences(text: str, count: int) -> str:
    """Return the first ``count`` sentences of ``text``."""
    if count <= 0:
        return ""
    return SENTENCE_BOUNDARY.join(text.split(SENTENCE_BOUNDARY)[:count]).strip()


class ContextAssembler:
    """
    Compresses ranked hits into a prompt context of at most ``max_chars``.

    Sections are kept in rank order; when the cap is exceeded the
    lowest-ranked sections are dropped first. A top section that alone
    exceeds the cap is truncated to it.
    """

    def __init__(self, max_chars: int = 4000) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars

    def sections(
        self,
        hits: Sequence[SimilarityHit],
        max_sentences_per_article: int,
    ) -> List[str]:
        sections = []
        for hit in hits:
            snippet = leading_sentences(hit.article.content, max_sentences_per_article)
            sections.append(f"{hit.article.title}\n{snippet}" if snippet else hit.article.title)
        return sections

    def build(
        self,
        hits: Sequence[SimilarityHit],
        max_sentences_per_article: int,
    ) -> str:
        sections = self.sections(hits, max_sentences_per_article)

        while len(sections) > 1 and len(SECTION_SEPARATOR.join(sections)) > self.max_chars:
            sections.pop()

        return SECTION_SEPARATOR.join(sections)[: self.max_chars]


def build_prompt(context: str, question: str) -> str:
    """Render the user prompt handed to the generation capability."""
    if not context:
        return f"Question: {question}"
    return f"Context: {context}\n\nQuestion: {question}"
