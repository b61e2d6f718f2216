"""Reader session — one text, one ConditionSpec, and the engines that pace it.

WHY: The engines are deliberately small and unaware of each other. A
reading surface needs one object that owns the text and configuration,
keeps the token sequence in step with them, decides which engine runs,
and turns user intents (play, pause, step, reset, pointer moves, imports)
into whole-value configuration changes.

HOW: ``ReaderSession`` holds the current text, ConditionSpec and derived
tokens. Every configuration change goes through ``replace_spec``, which
retokenizes when tokenization changed, lets the rate controller forget a
stale base speed, remeasures the scroll cycle, then syncs the engines:
the step scheduler runs for autoplay + rsvp + step, the animator for
autoplay + rsvp + continuous, never both.

RULES:
- Text or tokenization change -> index and offset back to 0
- Any other change keeps the position (font size mid-playback, etc.)
- Viewport steps map to mode "rsvp" plus a (unit, chunkSize) pair
- Intents with invalid values fall back or are ignored, never raise;
  only import_config raises (MalformedConfig)
- After close() no timer or frame is pending and nothing re-arms
"""

from __future__ import annotations

import dataclasses
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from rsvp_engine import config
from rsvp_engine.core.normalizer import coerce_number, export_config, normalize, parse_config
from rsvp_engine.core.spec import (
    DEFAULT_SPEC,
    DIRECTIONS,
    MODES,
    PROGRESSIONS,
    SPEED_UNITS,
    ConditionSpec,
    DisplaySpec,
    PunctuationPauseSpec,
    TokenizationSpec,
    WindowSpec,
    with_motion,
    with_speed,
)
from rsvp_engine.core.tokenizer import coerce_count, tokenize
from rsvp_engine.core.windower import window_at
from rsvp_engine.engine.animator import ContinuousAnimator, Measurer
from rsvp_engine.engine.events import EventLog, LogEntry
from rsvp_engine.engine.rate_control import RateController
from rsvp_engine.engine.step_scheduler import StepScheduler
from rsvp_engine.engine.timers import FrameSource, Timer, VirtualFrameSource, VirtualTimer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Viewport steps: the coarse "how much text per flash" slider
# ---------------------------------------------------------------------------

VIEWPORT_STEPS: Dict[str, Tuple[str, int]] = {
    "letter-1": ("char", 1),
    "letter-2": ("char", 2),
    "letter-3": ("char", 3),
    "word-1": ("word", 1),
    "word-2": ("word", 2),
    "word-3": ("word", 3),
    "sentence": ("sentence", 1),
}

DEFAULT_VIEWPORT_STEP = "word-1"


def viewport_step_for(tokenization: TokenizationSpec) -> Optional[str]:
    """The viewport step matching a tokenization setting, if any."""
    pair = (tokenization.unit, tokenization.chunk_size)
    for name, candidate in VIEWPORT_STEPS.items():
        if candidate == pair:
            return name
    return None


class ReaderSession:
    """Text + ConditionSpec + engines, driven by user intents.

    Args:
        text: Initial source text.
        spec: Initial configuration (defaults to DEFAULT_SPEC).
        timer: Clock for the step scheduler (virtual when omitted).
        frames: Frame clock for the animator (virtual when omitted).
        measure: Optional text-extent measurement for the scroll cycle.
        event_log_size: Bound of the event log.
    """

    def __init__(
        self,
        text: str = "",
        spec: Optional[ConditionSpec] = None,
        timer: Optional[Timer] = None,
        frames: Optional[FrameSource] = None,
        measure: Optional[Measurer] = None,
        event_log_size: int = config.EVENT_LOG_SIZE,
        min_step_ms: int = config.MIN_STEP_MS,
    ) -> None:
        self._spec = spec if spec is not None else DEFAULT_SPEC
        self._text = text or ""
        self._tokens: List[str] = self._tokenize()
        self._closed = False
        self.timer = timer if timer is not None else VirtualTimer()
        self.frames = frames if frames is not None else VirtualFrameSource()
        self.event_log = EventLog(max_entries=event_log_size)
        self.scheduler = StepScheduler(
            tokens=lambda: self._tokens,
            spec=lambda: self._spec,
            timer=self.timer,
            event_log=self.event_log,
            min_step_ms=min_step_ms,
        )
        self.animator = ContinuousAnimator(
            tokens=lambda: self._tokens,
            spec=lambda: self._spec,
            frames=self.frames,
            measure=measure,
        )
        self.rate_controller = RateController()
        self._sync_engines()

    # -- read-only state -----------------------------------------------------

    @property
    def spec(self) -> ConditionSpec:
        return self._spec

    @property
    def text(self) -> str:
        return self._text

    @property
    def tokens(self) -> List[str]:
        return list(self._tokens)

    @property
    def index(self) -> int:
        return self.scheduler.index

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @property
    def animating(self) -> bool:
        return self.animator.active

    @property
    def offset_px(self) -> float:
        return self.animator.offset_px

    @property
    def cycle_length(self) -> float:
        return self.animator.cycle_length

    @property
    def viewport_step(self) -> Optional[str]:
        return viewport_step_for(self._spec.tokenization)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def events(self) -> List[LogEntry]:
        return self.event_log.entries()

    def current_window(self) -> str:
        """The text shown at the current index ("" when there is nothing)."""
        return window_at(
            self._tokens,
            self.scheduler.index,
            self._spec.display.window_size,
            self._spec.tokenization.unit,
        )

    @property
    def position_label(self) -> str:
        return "{}/{}".format(self.index + 1, max(1, len(self._tokens)))

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view of the session for serialization."""
        return {
            "text": self._text,
            "token_count": len(self._tokens),
            "index": self.index,
            "window": self.current_window(),
            "position": self.position_label,
            "running": self.running,
            "animating": self.animating,
            "offset_px": self.offset_px,
            "cycle_length": self.cycle_length,
            "viewport_step": self.viewport_step,
            "mode": self._spec.mode,
            "progression": self._spec.motion.progression,
            "autoplay": self._spec.motion.autoplay,
            "speed": self._spec.motion.speed.to_dict(),
        }

    # -- whole-value updates -------------------------------------------------

    def replace_spec(self, spec: ConditionSpec) -> None:
        """Swap in a new ConditionSpec and bring the engines in line with it."""
        if self._closed:
            return
        previous, self._spec = self._spec, spec
        self.rate_controller.sync(spec)
        if previous.tokenization != spec.tokenization:
            self._retokenize()
        else:
            self.animator.remeasure()
        self._sync_engines()

    def set_text(self, text: str) -> None:
        text = text or ""
        if self._closed or text == self._text:
            return
        self._text = text
        self._retokenize()
        self._sync_engines()

    def import_config(self, document: Union[str, Mapping[str, Any]]) -> ConditionSpec:
        """Validate and apply an external configuration.

        Raises:
            MalformedConfig: If the document cannot be normalized.
        """
        if isinstance(document, str):
            spec = parse_config(document)
        else:
            spec = normalize(document)
        self.replace_spec(spec)
        logger.info("Imported configuration (mode=%s, unit=%s)", spec.mode, spec.tokenization.unit)
        return spec

    def export_config(self) -> str:
        return export_config(self._spec)

    # -- intents -------------------------------------------------------------

    def set_autoplay(self, enabled: bool) -> None:
        self.replace_spec(with_motion(self._spec, autoplay=bool(enabled)))

    def set_mode(self, mode: str) -> None:
        if mode not in MODES:
            mode = DEFAULT_SPEC.mode
        self.replace_spec(dataclasses.replace(self._spec, mode=mode))

    def set_progression(self, progression: str) -> None:
        if progression in PROGRESSIONS:
            self.replace_spec(with_motion(self._spec, progression=progression))

    def set_direction(self, direction: str) -> None:
        if direction in DIRECTIONS:
            self.replace_spec(with_motion(self._spec, direction=direction))

    def set_speed(self, value: float, unit: str = "cps") -> None:
        """Set the speed; non-positive or non-finite values are ignored."""
        try:
            number = float(value)
        except (TypeError, ValueError):
            return
        if unit not in SPEED_UNITS or not math.isfinite(number) or number <= 0:
            return
        self.replace_spec(with_speed(self._spec, number, unit))

    def set_pause_at_punctuation(self, enabled: bool, delay_ms: Optional[int] = None) -> None:
        current = self._spec.motion.pause_at_punctuation
        delay = int(coerce_number(delay_ms, current.delay_ms, minimum=0.0))
        self.replace_spec(
            with_motion(
                self._spec,
                pause_at_punctuation=PunctuationPauseSpec(enabled=bool(enabled), delay_ms=delay),
            )
        )

    def set_rate_control(self, enabled: bool) -> None:
        rate = dataclasses.replace(self._spec.motion.rate_control, enabled=bool(enabled))
        self.replace_spec(with_motion(self._spec, rate_control=rate))

    def set_display(self, window_size: int, step_size: int) -> None:
        """Set the display window; unusable counts keep the current value."""
        current = self._spec.display
        display = DisplaySpec(
            window_size=coerce_count(window_size, current.window_size),
            step_size=coerce_count(step_size, current.step_size),
        )
        self.replace_spec(dataclasses.replace(self._spec, display=display))

    def set_viewport_step(self, step: str) -> None:
        """Apply a viewport step; unknown names fall back to ``word-1``."""
        unit, chunk_size = VIEWPORT_STEPS.get(step, VIEWPORT_STEPS[DEFAULT_VIEWPORT_STEP])
        self.replace_spec(
            dataclasses.replace(
                self._spec,
                mode="rsvp",
                tokenization=TokenizationSpec(unit=unit, chunk_size=chunk_size),
            )
        )

    def set_viewport_size(self, width: float, height: float) -> None:
        current = self._spec.window
        width = coerce_number(width, current.width)
        height = coerce_number(height, current.height)
        window = WindowSpec(
            width=width if width > 0 else current.width,
            height=height if height > 0 else current.height,
        )
        self.replace_spec(dataclasses.replace(self._spec, window=window))

    def set_measured_extent(self, content_px: Optional[float]) -> None:
        """Report the rendered extent of the scrolling text (None to estimate)."""
        if self._closed:
            return
        if content_px is not None and not math.isfinite(coerce_number(content_px, math.nan)):
            return
        self.animator.set_measured_extent(content_px)

    def manual_advance(self) -> bool:
        """Step once by hand; False when playback is running or not stepping."""
        if self._closed or self._spec.mode != "rsvp":
            return False
        return self.scheduler.manual_advance()

    def reset(self) -> None:
        if self._closed:
            return
        self.scheduler.reset()
        self.animator.reset()

    def pointer_move(self, position: float) -> None:
        """Feed one pointer sample; unusable positions are ignored."""
        position = coerce_number(position, math.nan)
        if self._closed or math.isnan(position):
            return
        updated = self.rate_controller.on_pointer(self._spec, position)
        if updated is not self._spec:
            self.replace_spec(updated)

    def pointer_leave(self) -> None:
        if self._closed:
            return
        updated = self.rate_controller.on_leave(self._spec)
        if updated is not self._spec:
            self.replace_spec(updated)

    def close(self) -> None:
        """Cancel everything pending; the session stops changing afterwards."""
        self._closed = True
        self.scheduler.close()
        self.animator.close()

    # -- internals -----------------------------------------------------------

    def _tokenize(self) -> List[str]:
        tokenization = self._spec.tokenization
        return tokenize(self._text, tokenization.unit, tokenization.chunk_size)

    def _retokenize(self) -> None:
        self._tokens = self._tokenize()
        self.scheduler.retokenized()
        self.animator.content_changed()

    def _sync_engines(self) -> None:
        if self._closed:
            return
        spec = self._spec
        motion = spec.motion
        if spec.mode == "rsvp" and motion.autoplay and motion.progression == "step":
            self.scheduler.start()
        else:
            self.scheduler.stop()
        self.animator.sync()
