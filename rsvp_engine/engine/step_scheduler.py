"""Discrete playback: manual and timed stepping through the token sequence.

WHY: RSVP shows one window of text at a time and moves on after exactly
as long as it takes to read it at the configured speed. Readers also pause
playback and step by hand. Both paths must agree on the index, and a
stopped scheduler must never take another step.

HOW: Two states, Idle and Running. While Running, exactly one timer is
pending. Each firing advances the index, computes its own next delay from
the text now on screen, and only then arms the next timer. Tokens and the
ConditionSpec are read through callables on every firing, so setting
changes land on the next tick and never alter a delay already in flight.

RULES:
- start() is a no-op when already running; stop() keeps the index
- Any re-arm cancels the previous handle first, so at most one timer is pending
- Delay: max(min_step_ms, round(chars * 1000 / cps)), plus the punctuation
  pause when enabled, progression is "step" and the landed token ends in
  . ! or ? (optionally followed by one closing quote or bracket)
- The index is re-wrapped modulo the current token count on every use
- An empty token sequence at firing time stops the scheduler cleanly
- manual_advance() only moves when Idle with step progression
- Events: start, stop, tick (timer), manual (user), reset
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional, Sequence

from rsvp_engine import config
from rsvp_engine.core.spec import ConditionSpec, round_half_up, speed_in_cps
from rsvp_engine.core.windower import advance_length, normalize_index
from rsvp_engine.engine.events import EventKind, EventLog
from rsvp_engine.engine.timers import TaskHandle, Timer

logger = logging.getLogger(__name__)

_PAUSE_RE = re.compile(r"[.!?][\"'”’»)\]}]?$")

_MIN_SPEED_CPS = 0.1


def ends_with_pause_punctuation(token: str) -> bool:
    """True if ``token`` ends a sentence: ``.``, ``!`` or ``?`` plus an optional closer."""
    return bool(_PAUSE_RE.search(token.strip()))


def step_delay_ms(advanced_chars: int, speed_cps: float, min_step_ms: int = config.MIN_STEP_MS) -> int:
    """Milliseconds needed to read ``advanced_chars`` characters at ``speed_cps``."""
    cps = max(_MIN_SPEED_CPS, speed_cps)
    return max(min_step_ms, round_half_up(max(1, advanced_chars) * 1000.0 / cps))


class StepScheduler:
    """Self-rescheduling step timer over a live token sequence.

    Args:
        tokens: Returns the current token sequence.
        spec: Returns the current ConditionSpec.
        timer: Clock used to arm the next step.
        event_log: Shared log for start/stop/tick/manual/reset events.
        min_step_ms: Floor for a single timed step.
    """

    def __init__(
        self,
        tokens: Callable[[], Sequence[str]],
        spec: Callable[[], ConditionSpec],
        timer: Timer,
        event_log: Optional[EventLog] = None,
        min_step_ms: int = config.MIN_STEP_MS,
    ) -> None:
        self._tokens = tokens
        self._spec = spec
        self._timer = timer
        self._log = event_log if event_log is not None else EventLog()
        self._min_step_ms = min_step_ms
        self._index = 0
        self._running = False
        self._pending: Optional[TaskHandle] = None

    # -- state ---------------------------------------------------------------

    @property
    def index(self) -> int:
        return normalize_index(self._index, len(self._tokens()))

    @property
    def running(self) -> bool:
        return self._running

    @property
    def has_pending_step(self) -> bool:
        return self._pending is not None and not self._pending.cancelled

    @property
    def event_log(self) -> EventLog:
        return self._log

    # -- transitions ---------------------------------------------------------

    def start(self) -> bool:
        """Idle -> Running. Returns False if already running or nothing to show."""
        if self._running:
            return False
        if not self._tokens():
            return False
        self._running = True
        self._log.append(EventKind.START, self.index)
        logger.debug("Step playback started at index %d", self.index)
        self._arm(self.delay_for(self.index))
        return True

    def stop(self) -> bool:
        """Running -> Idle, cancelling the pending step. The index is kept."""
        if not self._running:
            return False
        self._cancel_pending()
        self._running = False
        self._log.append(EventKind.STOP, self.index)
        logger.debug("Step playback stopped at index %d", self.index)
        return True

    def advance(self, trigger: EventKind = EventKind.MANUAL) -> int:
        """Move forward by the effective step size; returns the new index."""
        tokens = self._tokens()
        if not tokens:
            self._index = 0
            return 0
        step = self._spec().display.effective_step
        self._index = (normalize_index(self._index, len(tokens)) + step) % len(tokens)
        self._log.append(trigger, self._index)
        return self._index

    def manual_advance(self) -> bool:
        """Step once by hand. Only honoured while Idle with step progression."""
        if self._running or self._spec().motion.progression != "step":
            return False
        if not self._tokens():
            return False
        self.advance(EventKind.MANUAL)
        return True

    def reset(self) -> None:
        """Jump back to index 0; a running scheduler restarts its step timing."""
        self._cancel_pending()
        self._index = 0
        self._log.append(EventKind.RESET, 0)
        if self._running:
            self._arm(self.delay_for(0))

    def retokenized(self) -> None:
        """The token sequence was rebuilt: rewind to 0 and re-arm, or stop if empty."""
        self._index = 0
        if not self._running:
            return
        self._cancel_pending()
        if not self._tokens():
            self._running = False
            self._log.append(EventKind.STOP, 0)
            logger.debug("Step playback stopped: no tokens")
            return
        self._arm(self.delay_for(0))

    def close(self) -> None:
        """Tear down: cancel any pending step without logging."""
        self._cancel_pending()
        self._running = False

    # -- timing --------------------------------------------------------------

    def delay_for(self, index: int) -> int:
        """Milliseconds to hold the window at ``index`` before the next step."""
        tokens = self._tokens()
        spec = self._spec()
        if not tokens:
            return self._min_step_ms
        index = normalize_index(index, len(tokens))
        chars = advance_length(
            tokens, index, spec.display.effective_step, spec.tokenization.unit
        )
        delay = step_delay_ms(chars, speed_in_cps(spec), self._min_step_ms)
        pause = spec.motion.pause_at_punctuation
        if (
            pause.enabled
            and spec.motion.progression == "step"
            and ends_with_pause_punctuation(tokens[index])
        ):
            delay += max(0, pause.delay_ms)
        return delay

    def _arm(self, delay_ms: int) -> None:
        self._cancel_pending()
        self._pending = self._timer.call_later(delay_ms / 1000.0, self._on_timer)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _on_timer(self) -> None:
        self._pending = None
        if not self._running:
            return
        if not self._tokens():
            self._running = False
            self._index = 0
            self._log.append(EventKind.STOP, 0)
            logger.debug("Step playback stopped: token sequence became empty")
            return
        index = self.advance(EventKind.TICK)
        self._arm(self.delay_for(index))
