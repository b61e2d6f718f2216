"""Shared test fixtures for the rsvp_engine test suite.

WHY: Most modules need the same small texts and a session whose clocks the
test controls. Centralizing them keeps expected values (token counts,
delays) consistent across test modules.

HOW: Fixtures build ReaderSessions on VirtualTimer/VirtualFrameSource so
tests move time explicitly with ``timer.advance()`` and ``frames.step()``.

RULES:
- No test sleeps or depends on wall-clock timing (the CLI play test uses
  the fastest speed; asyncio clock tests wait on events)
- Default spec: 24 cps, word/1, autoplay on, step progression
"""

from __future__ import annotations

import dataclasses

import pytest

from rsvp_engine.core.spec import DEFAULT_SPEC, ConditionSpec, with_motion
from rsvp_engine.engine.timers import VirtualFrameSource, VirtualTimer
from rsvp_engine.session import ReaderSession


SAMPLE_TEXT = "Hi there. Go now!"
"""Four words, two sentences."""


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_TEXT


@pytest.fixture
def paused_spec() -> ConditionSpec:
    """Default spec with autoplay off."""
    return with_motion(DEFAULT_SPEC, autoplay=False)


@pytest.fixture
def continuous_spec() -> ConditionSpec:
    """Autoplaying continuous scroll at 100 px/s in a 100 px wide viewport."""
    spec = with_motion(
        DEFAULT_SPEC,
        progression="continuous",
        speed=dataclasses.replace(DEFAULT_SPEC.motion.speed, unit="pxps", value=100.0),
    )
    return dataclasses.replace(
        spec, window=dataclasses.replace(spec.window, width=100.0, height=50.0)
    )


@pytest.fixture
def session(sample_text) -> ReaderSession:
    """A running session over SAMPLE_TEXT with virtual clocks."""
    s = ReaderSession(text=sample_text, timer=VirtualTimer(), frames=VirtualFrameSource())
    yield s
    s.close()


@pytest.fixture
def paused_session(sample_text, paused_spec) -> ReaderSession:
    s = ReaderSession(text=sample_text, spec=paused_spec)
    yield s
    s.close()
