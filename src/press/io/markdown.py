"""Markdown source helpers: passages, excerpts, search terms."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_WHITESPACE_RE = re.compile(r"\s+")

STOP_WORDS = frozenset({
    "the", "and", "that", "with", "this", "from", "into", "about", "there",
    "because", "while", "where", "when", "which", "your", "their", "then",
    "than", "have", "just", "been", "were",
})


@dataclass
class Passage:
    index: int
    text: str


def read_markdown_file(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def split_into_passages(markdown: str) -> list[Passage]:
    """Split on blank lines, keeping source order."""
    normalized = markdown.replace("\r\n", "\n")
    chunks = [c.strip() for c in _BLANK_LINE_RE.split(normalized)]
    return [Passage(index=i, text=text) for i, text in enumerate(c for c in chunks if c)]


def build_excerpt(passage_text: str, edge_words: int = 6) -> str:
    """Quote a passage as ``"first words...last words"``, or whole if short."""
    flattened = _WHITESPACE_RE.sub(" ", passage_text).strip()
    if not flattened:
        return '""'
    words = flattened.split(" ")
    if len(words) <= edge_words * 2:
        return f'"{flattened}"'
    opening = " ".join(words[:edge_words])
    closing = " ".join(words[-edge_words:])
    return f'"{opening}...{closing}"'


def normalize_search_string(value: str) -> str:
    value = value.replace("“", '"').replace("”", '"')
    return _WHITESPACE_RE.sub(" ", value).strip().lower()


def extract_excerpt_parts(excerpt: str) -> tuple[str, str]:
    """Return the (start, end) halves of an excerpt; end == start if unsplit."""
    stripped = excerpt.strip()
    if stripped.startswith('"'):
        stripped = stripped[1:]
    if stripped.endswith('"'):
        stripped = stripped[:-1]
    start, _, end = stripped.strip().partition("...")
    start = start.strip()
    end = end.strip() or start
    return start, end


def source_contains_excerpt(source_text: str, excerpt: str) -> bool:
    """True if the excerpt's start appears in the source with its end after it."""
    source = normalize_search_string(source_text)
    start, end = extract_excerpt_parts(excerpt)
    if not start:
        return False
    start_index = source.find(normalize_search_string(start))
    if start_index == -1:
        return False
    return source.find(normalize_search_string(end), start_index) != -1


def suggest_search_terms(passage_text: str, limit: int = 6) -> str:
    tokens = re.sub(r"[^a-zA-Z0-9\s]", " ", passage_text).lower().split()
    filtered = [t for t in tokens if len(t) > 2 and t not in STOP_WORDS]
    return " ".join(filtered[:limit])
