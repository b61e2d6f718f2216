"""Text tokenization into letters, words, sentences and fixed-size chunks.

WHY: Every pacing mode works on the same ordered token sequence. The
sequence must be stable (same text + same settings = same tokens) and
must never lose or reorder text, otherwise the reader skips or repeats
content when settings change mid-stream.

HOW: Two passes. The base split produces one token per code point (char),
per whitespace-delimited word (word, chunk) or per terminal-punctuation
sentence (sentence). The grouping pass then joins consecutive base tokens
into runs of ``chunk_size``, the same left-to-right bucketing used for
word groups elsewhere.

RULES:
- char keeps every code point, whitespace included
- word/chunk: trim, split on whitespace runs, drop empties
- sentence: greedy ``[^.!?]+[.!?]?`` scan, each piece stripped, empties
  dropped. It is a heuristic: "Dr. Smith" splits after "Dr." and that is
  accepted behaviour
- chunk_size is coerced to an int >= 1 and only groups base tokens
- Groups join with "" for char and " " otherwise; the last group may be short
- Empty text yields an empty list, never an error
"""

from __future__ import annotations

import math
import re
from typing import Any, List

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]?")


def coerce_count(value: Any, default: int = 1) -> int:
    """Coerce ``value`` to an integer >= 1, using ``default`` when unusable."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(1, int(math.floor(number)))


def joiner_for(unit: str) -> str:
    """The string that joins adjacent tokens of ``unit`` back into text."""
    return "" if unit == "char" else " "


def split_base(text: str, unit: str) -> List[str]:
    """Split ``text`` into base tokens for ``unit`` without any grouping."""
    if unit == "char":
        return list(text)
    if unit == "sentence":
        pieces = (match.group(0).strip() for match in _SENTENCE_RE.finditer(text))
        return [piece for piece in pieces if piece]
    return text.split()


def tokenize(text: str, unit: str = "word", chunk_size: Any = 1) -> List[str]:
    """Convert text into the ordered token sequence for a tokenization setting.

    Args:
        text: Source text; may be empty.
        unit: "char", "word", "sentence" or "chunk". Unknown units split
              like "word".
        chunk_size: Number of base tokens per output token.

    Returns:
        The token list. ``tokenize("abcdef", "char", 2)`` is
        ``["ab", "cd", "ef"]``.
    """
    size = coerce_count(chunk_size)
    base = split_base(text or "", unit)
    if not base:
        return []

    if size == 1 and unit != "chunk":
        return base

    joiner = joiner_for(unit)
    return [joiner.join(base[i:i + size]) for i in range(0, len(base), size)]
