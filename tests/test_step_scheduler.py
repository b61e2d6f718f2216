"""Tests for timed and manual stepping.

WHY: Step playback is the core of RSVP. Off-by-one delays, a second timer
armed by accident or a tick after stop would all be visible to a reader
as stutter or runaway playback.

HOW: The scheduler reads tokens and spec through closures over a mutable
holder, so tests can change either mid-flight. Time only moves through
VirtualTimer.advance().

RULES:
- Default speed is 24 cps: "hello" (5 chars) holds for round(5000/24) = 208 ms
"""

from __future__ import annotations

import dataclasses
from typing import List

import pytest

from rsvp_engine.core.spec import (
    DEFAULT_SPEC,
    ConditionSpec,
    DisplaySpec,
    PunctuationPauseSpec,
    with_motion,
    with_speed,
)
from rsvp_engine.engine.events import EventKind
from rsvp_engine.engine.step_scheduler import (
    StepScheduler,
    ends_with_pause_punctuation,
    step_delay_ms,
)
from rsvp_engine.engine.timers import VirtualTimer


class _Holder:
    """Mutable tokens/spec pair read by the scheduler on every use."""

    def __init__(self, tokens: List[str], spec: ConditionSpec = DEFAULT_SPEC) -> None:
        self.tokens = tokens
        self.spec = spec


def _make(tokens, spec=DEFAULT_SPEC):
    holder = _Holder(list(tokens), spec)
    timer = VirtualTimer()
    scheduler = StepScheduler(
        tokens=lambda: holder.tokens,
        spec=lambda: holder.spec,
        timer=timer,
    )
    return scheduler, timer, holder


def _kinds(scheduler):
    return [entry.event for entry in scheduler.event_log.entries()]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestStepDelay:

    def test_reading_time(self):
        assert step_delay_ms(5, 24) == 208

    def test_rounds_half_up(self):
        # 1 char at 400 cps = 2.5 ms
        assert step_delay_ms(1, 400, min_step_ms=1) == 3

    def test_floor(self):
        assert step_delay_ms(1, 1000) == 20
        assert step_delay_ms(3, 10_000, min_step_ms=50) == 50

    def test_never_below_floor(self):
        for chars in (1, 2, 5, 40):
            for cps in (1, 24, 500, 1e6):
                assert step_delay_ms(chars, cps) >= 20

    def test_zero_chars_counts_as_one(self):
        assert step_delay_ms(0, 10) == 100


class TestPausePunctuation:

    @pytest.mark.parametrize("token", ["end.", "Really?", "Stop!", 'said."', "(done!)", "wait..."])
    def test_sentence_endings(self, token):
        assert ends_with_pause_punctuation(token)

    @pytest.mark.parametrize("token", ["word", "3.5", "e.g", "comma,", ""])
    def test_other_tokens(self, token):
        assert not ends_with_pause_punctuation(token)


# ---------------------------------------------------------------------------
# Running state
# ---------------------------------------------------------------------------


class TestTimedPlayback:

    def test_start_arms_one_timer(self):
        scheduler, timer, _ = _make(["hello", "world"])
        assert scheduler.start() is True
        assert scheduler.running
        assert timer.pending_count == 1
        assert timer.next_due() == pytest.approx(0.208)

    def test_first_step_waits_for_current_window(self):
        scheduler, timer, _ = _make(["hello", "world"])
        scheduler.start()
        timer.advance(0.2)
        assert scheduler.index == 0
        timer.advance(0.01)
        assert scheduler.index == 1

    def test_wraps_to_start(self):
        scheduler, timer, _ = _make(["hello", "world"])
        scheduler.start()
        timer.advance(0.5)
        assert scheduler.index == 0
        assert _kinds(scheduler) == [EventKind.START, EventKind.TICK, EventKind.TICK]

    def test_start_twice_is_noop(self):
        scheduler, timer, _ = _make(["a", "b"])
        scheduler.start()
        assert scheduler.start() is False
        assert timer.pending_count == 1

    def test_start_without_tokens(self):
        scheduler, timer, _ = _make([])
        assert scheduler.start() is False
        assert not scheduler.running
        assert timer.pending_count == 0

    def test_stop_cancels_and_keeps_index(self):
        scheduler, timer, _ = _make(["hello", "world", "again"])
        scheduler.start()
        timer.advance(0.21)
        assert scheduler.stop() is True
        timer.advance(10)
        assert scheduler.index == 1
        assert timer.pending_count == 0
        assert not scheduler.has_pending_step
        assert _kinds(scheduler)[-1] == EventKind.STOP

    def test_speed_change_applies_on_next_tick(self):
        twenty_four = "x" * 24
        scheduler, timer, holder = _make([twenty_four, twenty_four])
        scheduler.start()
        holder.spec = with_speed(DEFAULT_SPEC, 48)
        timer.advance(0.9)
        assert scheduler.index == 0
        timer.advance(0.2)
        assert scheduler.index == 1
        assert timer.next_due() == pytest.approx(1.5)

    def test_effective_step_skips_tokens(self):
        spec = dataclasses.replace(DEFAULT_SPEC, display=DisplaySpec(window_size=3, step_size=2))
        scheduler, _, _ = _make(["a", "b", "c", "d", "e"], with_motion(spec, autoplay=False))
        assert [scheduler.advance() for _ in range(3)] == [2, 4, 1]

    def test_step_size_capped_by_window(self):
        spec = dataclasses.replace(DEFAULT_SPEC, display=DisplaySpec(window_size=1, step_size=4))
        scheduler, _, _ = _make(["a", "b", "c"], spec)
        assert scheduler.advance() == 1

    def test_tokens_emptied_while_running(self):
        scheduler, timer, holder = _make(["hello"])
        scheduler.start()
        holder.tokens = []
        timer.advance(1)
        assert not scheduler.running
        assert scheduler.index == 0
        assert timer.pending_count == 0
        assert _kinds(scheduler)[-1] == EventKind.STOP

    def test_index_rewraps_when_sequence_shrinks(self):
        scheduler, _, holder = _make(["a", "b", "c", "d"], with_motion(DEFAULT_SPEC, autoplay=False))
        scheduler.advance()
        scheduler.advance()
        scheduler.advance()
        holder.tokens = ["a", "b"]
        assert scheduler.index == 1


class TestPunctuationPause:

    def _spec(self, progression="step"):
        return with_motion(
            DEFAULT_SPEC,
            progression=progression,
            pause_at_punctuation=PunctuationPauseSpec(enabled=True, delay_ms=250),
        )

    def test_pause_added_after_sentence_end(self):
        scheduler, _, _ = _make(["Hi.", "there"], self._spec())
        assert scheduler.delay_for(0) == 125 + 250
        assert scheduler.delay_for(1) == 208

    def test_disabled_pause(self):
        scheduler, _, _ = _make(["Hi.", "there"])
        assert scheduler.delay_for(0) == 125

    def test_pause_only_in_step_progression(self):
        scheduler, _, _ = _make(["Hi.", "there"], self._spec(progression="continuous"))
        assert scheduler.delay_for(0) == 125


# ---------------------------------------------------------------------------
# Idle-state operations
# ---------------------------------------------------------------------------


class TestManualAndReset:

    def test_manual_advance_when_idle(self):
        scheduler, timer, _ = _make(["a", "b", "c"])
        assert scheduler.manual_advance() is True
        assert scheduler.index == 1
        assert timer.pending_count == 0
        assert _kinds(scheduler) == [EventKind.MANUAL]

    def test_manual_advance_refused_while_running(self):
        scheduler, _, _ = _make(["a", "b", "c"])
        scheduler.start()
        assert scheduler.manual_advance() is False
        assert scheduler.index == 0

    def test_manual_advance_refused_in_continuous_progression(self):
        scheduler, _, _ = _make(["a", "b"], with_motion(DEFAULT_SPEC, progression="continuous"))
        assert scheduler.manual_advance() is False

    def test_manual_advance_wraps(self):
        scheduler, _, _ = _make(["a", "b"])
        scheduler.manual_advance()
        scheduler.manual_advance()
        assert scheduler.index == 0

    def test_reset_while_running_rearms(self):
        scheduler, timer, _ = _make(["hello", "world", "again"])
        scheduler.start()
        timer.advance(0.21)
        scheduler.reset()
        assert scheduler.index == 0
        assert scheduler.running
        assert timer.pending_count == 1
        assert _kinds(scheduler)[-1] == EventKind.RESET

    def test_reset_when_idle(self):
        scheduler, timer, _ = _make(["a", "b"])
        scheduler.manual_advance()
        scheduler.reset()
        assert scheduler.index == 0
        assert timer.pending_count == 0

    def test_retokenized_rewinds_and_rearms(self):
        scheduler, timer, holder = _make(["hello", "world"])
        scheduler.start()
        timer.advance(0.21)
        holder.tokens = ["x", "y", "z"]
        scheduler.retokenized()
        assert scheduler.index == 0
        assert timer.pending_count == 1

    def test_retokenized_to_empty_stops(self):
        scheduler, timer, holder = _make(["hello"])
        scheduler.start()
        holder.tokens = []
        scheduler.retokenized()
        assert not scheduler.running
        assert timer.pending_count == 0

    def test_close_cancels_silently(self):
        scheduler, timer, _ = _make(["a", "b"])
        scheduler.start()
        scheduler.close()
        assert not scheduler.running
        assert timer.pending_count == 0
        assert _kinds(scheduler) == [EventKind.START]
