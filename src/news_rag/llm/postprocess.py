"""
Reply post-processing applied to every raw generation result, whatever the
backend, before it is stored or returned.
"""

from __future__ import annotations

from typing import List, Set


def dedupe_lines(text: str) -> str:
    """
    Drop repeated lines, keeping the first occurrence of each distinct line.

    Duplicates are removed across the whole reply, not only when adjacent:
    a line that reappears anywhere later is dropped. Matching is exact, so
    lines that differ only in surrounding whitespace are distinct. Line
    order is preserved. Blank lines are never treated as duplicates of each
    other, but a run of blank lines collapses to one.
    """
    seen: Set[str] = set()
    kept: List[str] = []

    for line in text.splitlines():
        if not line.strip():
            if kept and kept[-1].strip():
                kept.append("")
            continue
        if line in seen:
            continue
        seen.add(line)
        kept.append(line)

    return "\n".join(kept)


def clean_reply(text: str) -> str:
    """Deduplicate repeated lines and trim surrounding whitespace."""
    return dedupe_lines(text).strip()
