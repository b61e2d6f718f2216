"""Continuous progression: a wrapping pixel offset advanced every frame.

WHY: In continuous mode the whole text scrolls past like a marquee at a
steady pixel speed. The surface only needs one number per frame (how far
the content has moved), and the loop must restart cleanly once the
content has fully left the viewport.

HOW: While active, exactly one frame registration is live. Each frame
adds ``px_per_second * dt`` to the offset, where ``dt`` is the time since
the previous frame (0 on the first frame after a (re)start). The cycle
length is the content extent plus the viewport extent on the scroll axis,
so text exits completely before the loop restarts.

RULES:
- Active only with autoplay on, mode "rsvp" and progression "continuous";
  otherwise no frame registration exists
- 0 <= offset_px <= cycle_length at all times
- Overflow resets the offset to exactly 0 in the same frame (hard cut)
- Direction or speed changes restart delta tracking (next dt is 0)
- Text or tokenization changes reset the offset to 0
- Content extent comes from a host-supplied measurement when available,
  otherwise from a glyph-width estimate
- A host measurement is tied to the direction it was taken in; a
  direction change falls back to the estimate until the host reports again
- After close() neither offset nor cycle length changes
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence, Tuple

from rsvp_engine.core.spec import ConditionSpec, approx_char_px, speed_in_pxps
from rsvp_engine.core.tokenizer import joiner_for
from rsvp_engine.engine.timers import FrameSource, TaskHandle

logger = logging.getLogger(__name__)

Measurer = Callable[[str, str, ConditionSpec], float]
"""(text, direction, spec) -> rendered extent of the text on the scroll axis."""


def scroll_text(tokens: Sequence[str], unit: str, direction: str) -> str:
    """Join tokens into the scrolling text: one per line when vertical."""
    if direction == "vertical":
        return "\n".join(tokens)
    return joiner_for(unit).join(tokens)


def estimate_extent(text: str, direction: str, spec: ConditionSpec) -> float:
    """Approximate rendered size of ``text`` along the scroll axis, in pixels."""
    if not text:
        return 0.0
    typo = spec.typography
    if direction == "vertical":
        lines = text.count("\n") + 1
        return lines * typo.font_size_px * typo.line_height
    return len(text) * approx_char_px(spec) + text.count(" ") * typo.word_spacing_px


def is_continuous_active(spec: ConditionSpec) -> bool:
    motion = spec.motion
    return motion.autoplay and spec.mode == "rsvp" and motion.progression == "continuous"


class ContinuousAnimator:
    """Frame-driven scroll offset over the joined token text.

    Args:
        tokens: Returns the current token sequence.
        spec: Returns the current ConditionSpec.
        frames: Frame clock delivering per-frame callbacks.
        measure: Optional measurement of the joined text's extent.
    """

    def __init__(
        self,
        tokens: Callable[[], Sequence[str]],
        spec: Callable[[], ConditionSpec],
        frames: FrameSource,
        measure: Optional[Measurer] = None,
    ) -> None:
        self._tokens = tokens
        self._spec = spec
        self._frames = frames
        self._measure = measure or estimate_extent
        self._offset_px = 0.0
        self._last_ts: Optional[float] = None
        self._pending: Optional[TaskHandle] = None
        self._motion_key: Optional[Tuple[str, str, float]] = None
        self._measured_content: Optional[float] = None
        self._measured_direction: Optional[str] = None
        self._cycle_length = 1.0
        self._closed = False
        self.remeasure()

    @property
    def offset_px(self) -> float:
        return self._offset_px

    @property
    def cycle_length(self) -> float:
        return self._cycle_length

    @property
    def active(self) -> bool:
        return self._pending is not None and not self._pending.cancelled

    @property
    def px_per_second(self) -> float:
        return speed_in_pxps(self._spec())

    # -- lifecycle -----------------------------------------------------------

    def sync(self) -> None:
        """Start, restart or suspend the frame loop to match the current spec."""
        spec = self._spec()
        if self._closed or not is_continuous_active(spec):
            self.suspend()
            return
        motion = spec.motion
        key = (motion.direction, motion.speed.unit, motion.speed.value)
        if self.active and key == self._motion_key:
            return
        if self._motion_key is not None and key[0] != self._motion_key[0]:
            self.remeasure()
        self._cancel_pending()
        self._last_ts = None
        self._motion_key = key
        self._pending = self._frames.request_frame(self._on_frame)
        logger.debug("Continuous animation (re)started at %.1f px/s", self.px_per_second)

    def suspend(self) -> None:
        """Drop the frame registration; the offset is kept."""
        if self.active:
            logger.debug("Continuous animation suspended at offset %.1f", self._offset_px)
        self._cancel_pending()
        self._last_ts = None
        self._motion_key = None

    def close(self) -> None:
        self._closed = True
        self.suspend()

    def reset(self) -> None:
        if self._closed:
            return
        self._offset_px = 0.0

    def content_changed(self) -> None:
        """Text or tokenization changed: rewind and remeasure."""
        if self._closed:
            return
        self._offset_px = 0.0
        self._measured_content = None
        self.remeasure()

    def set_measured_extent(self, content_px: Optional[float]) -> None:
        """Use a host-measured content extent instead of the estimate."""
        if self._closed:
            return
        self._measured_content = None if content_px is None else max(0.0, float(content_px))
        self._measured_direction = self._spec().motion.direction
        self.remeasure()

    def remeasure(self) -> None:
        """Recompute the cycle length from content and viewport size."""
        if self._closed:
            return
        spec = self._spec()
        direction = spec.motion.direction
        if self._measured_direction != direction:
            self._measured_content = None
        if self._measured_content is not None:
            content = self._measured_content
        else:
            text = scroll_text(self._tokens(), spec.tokenization.unit, direction)
            content = self._measure(text, direction, spec)
        viewport = spec.window.height if direction == "vertical" else spec.window.width
        self._cycle_length = max(1.0, content + viewport)
        if self._offset_px > self._cycle_length:
            self._offset_px = 0.0

    # -- frames --------------------------------------------------------------

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _on_frame(self, timestamp_s: float) -> None:
        self._pending = None
        if not is_continuous_active(self._spec()):
            self.suspend()
            return
        last = self._last_ts
        dt = 0.0 if last is None else max(0.0, timestamp_s - last)
        self._last_ts = timestamp_s
        advanced = self._offset_px + self.px_per_second * dt
        self._offset_px = 0.0 if advanced > self._cycle_length else advanced
        self._pending = self._frames.request_frame(self._on_frame)
