"""Circular display windows over a token sequence.

WHY: A playback index alone is not what the reader sees. With a window of
several tokens the display shows a short phrase, and at the end of the
text that phrase wraps back to the beginning so looping playback never
shows a truncated window. The same span arithmetic converts a character
speed into the wall-clock length of one step.

HOW: Indices are reduced with Python's floor-mod, so negative indices
wrap too. Windows read ``window_size`` consecutive tokens modulo the
sequence length and join them with the unit's joiner.

RULES:
- Empty token list: window is "" and advance length is 1
- window_at(tokens, i, 1, unit) == tokens[i % len(tokens)]
- advance_length is always >= 1 so a timed step always makes progress
"""

from __future__ import annotations

from typing import List, Sequence

from rsvp_engine.core.tokenizer import coerce_count, joiner_for


def normalize_index(index: int, length: int) -> int:
    """Reduce ``index`` into ``[0, length)``; 0 for an empty sequence."""
    if length <= 0:
        return 0
    return int(index) % length


def _circular_slice(tokens: Sequence[str], start_index: int, count: int) -> List[str]:
    length = len(tokens)
    start = normalize_index(start_index, length)
    return [tokens[(start + offset) % length] for offset in range(count)]


def window_at(tokens: Sequence[str], start_index: int, window_size: int, unit: str) -> str:
    """Return the text shown when playback sits at ``start_index``."""
    if not tokens:
        return ""
    size = coerce_count(window_size)
    if size == 1:
        return tokens[normalize_index(start_index, len(tokens))]
    return joiner_for(unit).join(_circular_slice(tokens, start_index, size))


def advance_length(tokens: Sequence[str], start_index: int, advance_count: int, unit: str) -> int:
    """Character length of ``advance_count`` tokens from ``start_index``, at least 1."""
    if not tokens:
        return 1
    span = _circular_slice(tokens, start_index, coerce_count(advance_count))
    return max(1, len(joiner_for(unit).join(span)))
