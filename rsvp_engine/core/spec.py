"""ConditionSpec — the frozen configuration value shared by every component.

WHY: Many independent controls (speed slider, unit selector, punctuation
toggle, pointer rate control) edit one configuration while two engines read
it on every tick or frame. Treating the configuration as an immutable value
that is replaced wholesale means a reader mid-computation can never observe
a half-applied change.

HOW: A tree of frozen dataclasses mirrors the JSON document shape. Each
class has a ``to_dict()`` that produces the camelCase export form. Changes
go through ``dataclasses.replace`` (see the ``with_*`` helpers) and produce
a new ConditionSpec.

RULES:
- All dataclasses are frozen; changes replace the whole value
- ``to_dict()`` output is the canonical export; the normalizer reads it back
  into an equal value (lossless JSON round-trip)
- Defaults match the reference reading condition (24 cps, words, 36px Geist)
- Only the normalizer builds a ConditionSpec from untrusted input
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from rsvp_engine import config

SPEC_VERSION = "0.1"

MODES: Tuple[str, ...] = ("rsvp", "continuous")
UNITS: Tuple[str, ...] = ("char", "word", "chunk", "sentence")
SPEED_UNITS: Tuple[str, ...] = ("cps", "pxps")
DIRECTIONS: Tuple[str, ...] = ("horizontal", "vertical")
PROGRESSIONS: Tuple[str, ...] = ("step", "continuous")
RATE_SOURCES: Tuple[str, ...] = ("mouseY",)

DEFAULT_VARIABLE_AXES: Dict[str, float] = {"wght": 450.0, "wdth": 100.0, "opsz": 36.0}


@dataclass(frozen=True)
class WindowSpec:
    """Viewport size in pixels, used for the continuous scroll cycle."""

    width: float = 1280.0
    height: float = 720.0

    def to_dict(self) -> Dict[str, Any]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class TokenizationSpec:
    """How text is cut into tokens.

    RULES:
    - unit: one of UNITS
    - chunk_size: groups already-split base tokens, always >= 1
    """

    unit: str = "word"
    chunk_size: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {"unit": self.unit, "chunkSize": self.chunk_size}


@dataclass(frozen=True)
class TypographySpec:
    """Font metrics. The engine only uses them to estimate glyph width."""

    font_family: str = "Geist"
    font_size_px: float = 36.0
    line_height: float = 1.4
    line_width_px: float = 720.0
    letter_spacing_px: float = 0.0
    word_spacing_px: float = 0.0
    variable_axes: Optional[Dict[str, float]] = field(
        default_factory=lambda: dict(DEFAULT_VARIABLE_AXES)
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fontFamily": self.font_family,
            "fontSizePx": self.font_size_px,
            "lineHeight": self.line_height,
            "lineWidthPx": self.line_width_px,
            "letterSpacingPx": self.letter_spacing_px,
            "wordSpacingPx": self.word_spacing_px,
            "variableAxes": None if self.variable_axes is None else dict(self.variable_axes),
        }


@dataclass(frozen=True)
class SpeedSpec:
    """Playback speed: characters per second or pixels per second."""

    unit: str = "cps"
    value: float = 24.0

    def to_dict(self) -> Dict[str, Any]:
        return {"unit": self.unit, "value": self.value}


@dataclass(frozen=True)
class RateControlSpec:
    """Pointer-driven speed modulation.

    RULES:
    - min_cps <= max_cps, both >= 1 (enforced by the normalizer)
    - invert: pointer at the top of the surface means fastest
    """

    enabled: bool = False
    source: str = "mouseY"
    min_cps: float = 8.0
    max_cps: float = 60.0
    invert: bool = True
    reset_on_leave: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "source": self.source,
            "minCps": self.min_cps,
            "maxCps": self.max_cps,
            "invert": self.invert,
            "resetOnLeave": self.reset_on_leave,
        }


@dataclass(frozen=True)
class PunctuationPauseSpec:
    """Extra hold after sentence-ending tokens in step progression."""

    enabled: bool = False
    delay_ms: int = 250

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "delayMs": self.delay_ms}


@dataclass(frozen=True)
class MotionSpec:
    autoplay: bool = True
    speed: SpeedSpec = field(default_factory=SpeedSpec)
    rate_control: RateControlSpec = field(default_factory=RateControlSpec)
    direction: str = "horizontal"
    progression: str = "step"
    pause_at_punctuation: PunctuationPauseSpec = field(default_factory=PunctuationPauseSpec)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "autoplay": self.autoplay,
            "speed": self.speed.to_dict(),
            "rateControl": self.rate_control.to_dict(),
            "direction": self.direction,
            "progression": self.progression,
            "pauseAtPunctuation": self.pause_at_punctuation.to_dict(),
        }


@dataclass(frozen=True)
class DisplaySpec:
    """How many tokens are shown per step and how many each step crosses.

    RULES:
    - window_size >= 1
    - the effective step is step_size clamped into [1, window_size]
    """

    window_size: int = 1
    step_size: int = 1

    @property
    def effective_step(self) -> int:
        return max(1, min(self.step_size, self.window_size))

    def to_dict(self) -> Dict[str, Any]:
        return {"windowSize": self.window_size, "stepSize": self.step_size}


@dataclass(frozen=True)
class ConditionSpec:
    """The complete reading condition: tokenization, typography, motion, display.

    WHY: One value describes everything needed to reproduce a reading
    session's presentation, so it can be exported, shared and re-imported.
    """

    version: str = SPEC_VERSION
    mode: str = "rsvp"
    window: WindowSpec = field(default_factory=WindowSpec)
    tokenization: TokenizationSpec = field(default_factory=TokenizationSpec)
    typography: TypographySpec = field(default_factory=TypographySpec)
    motion: MotionSpec = field(default_factory=MotionSpec)
    display: DisplaySpec = field(default_factory=DisplaySpec)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "mode": self.mode,
            "window": self.window.to_dict(),
            "tokenization": self.tokenization.to_dict(),
            "typography": self.typography.to_dict(),
            "motion": self.motion.to_dict(),
            "display": self.display.to_dict(),
        }


DEFAULT_SPEC = ConditionSpec()


# ---------------------------------------------------------------------------
# Whole-value update helpers
# ---------------------------------------------------------------------------


def with_motion(spec: ConditionSpec, **changes: Any) -> ConditionSpec:
    """Return a copy of ``spec`` with motion fields replaced."""
    return dataclasses.replace(spec, motion=dataclasses.replace(spec.motion, **changes))


def with_speed(spec: ConditionSpec, value: float, unit: str = "cps") -> ConditionSpec:
    return with_motion(spec, speed=SpeedSpec(unit=unit, value=float(value)))


def with_tokenization(spec: ConditionSpec, unit: str, chunk_size: int) -> ConditionSpec:
    return dataclasses.replace(
        spec, tokenization=TokenizationSpec(unit=unit, chunk_size=chunk_size)
    )


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def approx_char_px(spec: ConditionSpec) -> float:
    """Estimated average glyph advance in pixels for the spec's typography."""
    typo = spec.typography
    return max(1.0, typo.font_size_px * config.CHAR_WIDTH_FACTOR + typo.letter_spacing_px)


def speed_in_cps(spec: ConditionSpec) -> float:
    """The configured speed expressed in characters per second."""
    speed = spec.motion.speed
    if speed.unit == "pxps":
        return speed.value / approx_char_px(spec)
    return speed.value


def speed_in_pxps(spec: ConditionSpec) -> float:
    """The configured speed in pixels per second, floored at MIN_PX_PER_SECOND."""
    speed = spec.motion.speed
    if speed.unit == "pxps":
        px = speed.value
    else:
        px = speed.value * approx_char_px(spec)
    return max(config.MIN_PX_PER_SECOND, px)
