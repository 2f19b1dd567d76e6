"""Text chunking strategies used by the ``ingest`` tool."""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Sequence

DEFAULT_CHUNK_SIZE = 512
DEFAULT_OVERLAP = 50
DEFAULT_MIN_SIZE = 20

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+(?=[A-ZÀ-ɏ\"])")
_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_RECURSIVE_SEPARATORS = ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ")


def split_sentences(text: str) -> List[str]:
    return [part.strip() for part in _SENTENCE_RE.split(text) if part.strip()]


def _group(units: Sequence[str], size: int, overlap: int, min_size: int) -> List[str]:
    """Pack units into chunks below ``size``, repeating trailing units as overlap."""
    chunks: List[str] = []
    current: List[str] = []
    length = 0
    for unit in units:
        added = len(unit) + 1 if current else len(unit)
        if current and length + added > size:
            chunks.append(" ".join(current).strip())
            kept: List[str] = []
            kept_len = 0
            for previous in reversed(current):
                if kept_len + len(previous) + 1 > overlap:
                    break
                kept.insert(0, previous)
                kept_len += len(previous) + 1
            current, length = kept, kept_len
        current.append(unit)
        length += added
    if current:
        text = " ".join(current).strip()
        if len(text) >= min_size:
            chunks.append(text)
    return chunks


def chunk_fixed(text: str, size: int, overlap: int, min_size: int) -> List[str]:
    step = max(size - overlap, 1)
    chunks = []
    for start in range(0, len(text), step):
        chunks.append(text[start : start + size].strip())
        if start + size >= len(text):
            break
    return [c for c in chunks if len(c) >= min_size]


def chunk_sentence(text: str, size: int, overlap: int, min_size: int) -> List[str]:
    return _group(split_sentences(text), size, overlap, min_size)


def chunk_paragraph(text: str, size: int, overlap: int, min_size: int) -> List[str]:
    paragraphs = [p.strip() for p in _PARAGRAPH_RE.split(text) if p.strip()]
    return _group(paragraphs, size, overlap, min_size)


def _recursive_split(
    text: str, separators: Sequence[str], size: int, min_size: int
) -> List[str]:
    if len(text) <= size:
        return [text.strip()] if len(text.strip()) >= min_size else []

    sep = next((s for s in separators if s in text), None)
    if sep is None:
        pieces = (text[i : i + size].strip() for i in range(0, len(text), size))
        return [p for p in pieces if len(p) >= min_size]

    rest = separators[separators.index(sep) + 1 :]
    chunks: List[str] = []
    current = ""
    for part in text.split(sep):
        candidate = f"{current}{sep}{part}" if current else part
        if len(candidate) <= size:
            current = candidate
            continue
        if len(current.strip()) >= min_size:
            chunks.append(current.strip())
        if len(part) > size:
            chunks.extend(_recursive_split(part, rest, size, min_size))
            current = ""
        else:
            current = part
    if len(current.strip()) >= min_size:
        chunks.append(current.strip())
    return chunks


def chunk_recursive(text: str, size: int, overlap: int, min_size: int) -> List[str]:
    return _recursive_split(text, _RECURSIVE_SEPARATORS, size, min_size)


STRATEGIES: Dict[str, Callable[[str, int, int, int], List[str]]] = {
    "fixed": chunk_fixed,
    "sentence": chunk_sentence,
    "paragraph": chunk_paragraph,
    "recursive": chunk_recursive,
}


def chunk_text(
    text: str,
    strategy: str = "recursive",
    size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
    min_size: int = DEFAULT_MIN_SIZE,
) -> List[str]:
    """Split ``text`` with the named strategy; blank text yields no chunks."""
    if not text or not text.strip():
        return []
    try:
        splitter = STRATEGIES[strategy]
    except KeyError:
        raise ValueError(
            f"Unknown chunking strategy: {strategy}. Available: {', '.join(STRATEGIES)}"
        ) from None
    return splitter(text, size, overlap, min_size)
