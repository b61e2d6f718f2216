"""Configuration import: validate, upgrade and coerce into a ConditionSpec.

WHY: Configurations arrive from JSON files, HTTP bodies and older exports
that used words-per-minute. The engines must only ever see a well-formed
ConditionSpec, but live tweaking matters more than strictness, so bad leaf
values are repaired rather than rejected.

HOW: A jsonschema pass enforces the document structure (an object with
``tokenization``, ``motion`` and ``typography`` sub-objects). Each leaf is
then read with a small coercion helper that falls back to the default
ConditionSpec's value. Legacy speed units are migrated and the rate-control
range is ordered.

RULES:
- Structural failures raise MalformedConfig with the schema's message
- Numbers may be given as numeric strings; NaN/inf/garbage -> default
- Booleans accept true/false (and "true"/"false"); anything else -> default
- Enumerated fields outside their set -> default (mode falls back to rsvp)
- Speed {unit: "wpm"} -> {unit: "cps", value: round(wpm / 12)}
- rateControl: minCps and maxCps clamped to >= 1, then ordered min <= max
- normalize(spec.to_dict()) == spec for every ConditionSpec
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import jsonschema

from rsvp_engine.core.spec import (
    DEFAULT_SPEC,
    DIRECTIONS,
    MODES,
    PROGRESSIONS,
    RATE_SOURCES,
    SPEC_VERSION,
    UNITS,
    ConditionSpec,
    DisplaySpec,
    MotionSpec,
    PunctuationPauseSpec,
    RateControlSpec,
    SpeedSpec,
    TokenizationSpec,
    TypographySpec,
    WindowSpec,
    round_half_up,
)
from rsvp_engine.errors import MalformedConfig

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).resolve().parent / "condition_spec.schema.json"

_CACHED_SCHEMA: Optional[dict] = None

WORDS_PER_MINUTE_DIVISOR = 12
"""wpm / 12 = cps, assuming ~5 letters plus a space per word, over 60 s."""


def _get_schema() -> dict:
    """Load and cache the ConditionSpec import schema."""
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(_SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


# ---------------------------------------------------------------------------
# Leaf coercion
# ---------------------------------------------------------------------------


def coerce_number(value: Any, default: float, minimum: Optional[float] = None) -> float:
    """Parse a finite float; values below ``minimum`` are clamped up to it."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    if minimum is not None and number < minimum:
        return minimum
    return number


def _positive(value: Any, default: float) -> float:
    """Parse a finite float > 0; zero and negatives fall back to the default."""
    number = coerce_number(value, default)
    return number if number > 0 else default


def _integer(value: Any, default: int, minimum: int) -> int:
    number = coerce_number(value, float(default))
    return max(minimum, int(math.floor(number)))


def _boolean(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return default


def _choice(value: Any, choices: Sequence[str], default: str) -> str:
    return value if isinstance(value, str) and value in choices else default


def _section(parent: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = parent.get(key)
    return value if isinstance(value, Mapping) else {}


# ---------------------------------------------------------------------------
# Section readers
# ---------------------------------------------------------------------------


def _read_window(raw: Mapping[str, Any]) -> WindowSpec:
    d = DEFAULT_SPEC.window
    return WindowSpec(
        width=_positive(raw.get("width"), d.width),
        height=_positive(raw.get("height"), d.height),
    )


def _read_tokenization(raw: Mapping[str, Any]) -> TokenizationSpec:
    d = DEFAULT_SPEC.tokenization
    return TokenizationSpec(
        unit=_choice(raw.get("unit"), UNITS, d.unit),
        chunk_size=_integer(raw.get("chunkSize"), d.chunk_size, 1),
    )


def _read_variable_axes(raw: Mapping[str, Any]) -> Optional[Dict[str, float]]:
    if "variableAxes" not in raw:
        return DEFAULT_SPEC.typography.variable_axes
    axes = raw.get("variableAxes")
    if axes is None:
        return None
    if not isinstance(axes, Mapping):
        return DEFAULT_SPEC.typography.variable_axes
    cleaned: Dict[str, float] = {}
    for name, value in axes.items():
        number = coerce_number(value, math.nan)
        if isinstance(name, str) and math.isfinite(number):
            cleaned[name] = number
    return cleaned


def _read_typography(raw: Mapping[str, Any]) -> TypographySpec:
    d = DEFAULT_SPEC.typography
    family = raw.get("fontFamily")
    return TypographySpec(
        font_family=family if isinstance(family, str) and family.strip() else d.font_family,
        font_size_px=_positive(raw.get("fontSizePx"), d.font_size_px),
        line_height=_positive(raw.get("lineHeight"), d.line_height),
        line_width_px=_positive(raw.get("lineWidthPx"), d.line_width_px),
        letter_spacing_px=coerce_number(raw.get("letterSpacingPx"), d.letter_spacing_px),
        word_spacing_px=coerce_number(raw.get("wordSpacingPx"), d.word_spacing_px),
        variable_axes=_read_variable_axes(raw),
    )


def _read_speed(raw: Mapping[str, Any]) -> SpeedSpec:
    d = DEFAULT_SPEC.motion.speed
    unit = raw.get("unit")
    unit = unit.strip().lower() if isinstance(unit, str) else d.unit
    value = _positive(raw.get("value"), math.nan)

    if unit == "wpm":
        if math.isnan(value):
            return SpeedSpec(unit=d.unit, value=d.value)
        cps = max(1, round_half_up(value / WORDS_PER_MINUTE_DIVISOR))
        logger.debug("Migrated speed %.1f wpm to %d cps", value, cps)
        return SpeedSpec(unit="cps", value=float(cps))

    if unit not in ("cps", "pxps"):
        unit = d.unit
    if math.isnan(value):
        value = d.value
    return SpeedSpec(unit=unit, value=value)


def _read_rate_control(raw: Mapping[str, Any]) -> RateControlSpec:
    d = DEFAULT_SPEC.motion.rate_control
    provided_min = coerce_number(raw.get("minCps"), d.min_cps, minimum=1.0)
    provided_max = coerce_number(raw.get("maxCps"), d.max_cps, minimum=1.0)
    return RateControlSpec(
        enabled=_boolean(raw.get("enabled"), d.enabled),
        source=_choice(raw.get("source"), RATE_SOURCES, d.source),
        min_cps=min(provided_min, provided_max),
        max_cps=max(provided_min, provided_max),
        invert=_boolean(raw.get("invert"), d.invert),
        reset_on_leave=_boolean(raw.get("resetOnLeave"), d.reset_on_leave),
    )


def _read_pause(raw: Mapping[str, Any]) -> PunctuationPauseSpec:
    d = DEFAULT_SPEC.motion.pause_at_punctuation
    return PunctuationPauseSpec(
        enabled=_boolean(raw.get("enabled"), d.enabled),
        delay_ms=_integer(raw.get("delayMs"), d.delay_ms, 0),
    )


def _read_motion(raw: Mapping[str, Any]) -> MotionSpec:
    d = DEFAULT_SPEC.motion
    return MotionSpec(
        autoplay=_boolean(raw.get("autoplay"), d.autoplay),
        speed=_read_speed(_section(raw, "speed")),
        rate_control=_read_rate_control(_section(raw, "rateControl")),
        direction=_choice(raw.get("direction"), DIRECTIONS, d.direction),
        progression=_choice(raw.get("progression"), PROGRESSIONS, d.progression),
        pause_at_punctuation=_read_pause(_section(raw, "pauseAtPunctuation")),
    )


def _read_display(raw: Mapping[str, Any]) -> DisplaySpec:
    d = DEFAULT_SPEC.display
    return DisplaySpec(
        window_size=_integer(raw.get("windowSize"), d.window_size, 1),
        step_size=_integer(raw.get("stepSize"), d.step_size, 1),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(candidate: Any) -> ConditionSpec:
    """Turn an untrusted configuration document into a ConditionSpec.

    Args:
        candidate: Parsed JSON (normally a dict).

    Returns:
        A fully populated, internally consistent ConditionSpec.

    Raises:
        MalformedConfig: If the candidate is not an object or lacks one of
            the ``tokenization``, ``motion`` or ``typography`` objects.
    """
    try:
        jsonschema.validate(instance=candidate, schema=_get_schema())
    except jsonschema.ValidationError as exc:
        raise MalformedConfig("Malformed config: {}".format(exc.message)) from exc

    mode = candidate.get("mode")
    if mode == "paragraph":
        mode = "continuous"

    return ConditionSpec(
        version=SPEC_VERSION,
        mode=_choice(mode, MODES, DEFAULT_SPEC.mode),
        window=_read_window(_section(candidate, "window")),
        tokenization=_read_tokenization(candidate["tokenization"]),
        typography=_read_typography(candidate["typography"]),
        motion=_read_motion(candidate["motion"]),
        display=_read_display(_section(candidate, "display")),
    )


def parse_config(text: str) -> ConditionSpec:
    """Parse a JSON document and normalize it.

    Raises:
        MalformedConfig: On invalid JSON or a structurally invalid document.
    """
    try:
        candidate = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedConfig("Invalid JSON: {}".format(exc)) from exc
    return normalize(candidate)


def export_config(spec: ConditionSpec) -> str:
    """Serialize a ConditionSpec to its canonical JSON form."""
    return json.dumps(spec.to_dict(), indent=2, ensure_ascii=False)
