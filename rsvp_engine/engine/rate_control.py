"""Pointer-driven reading speed.

WHY: Readers modulate pace by moving the pointer along a control surface:
higher (or lower, when inverted) means faster. When the pointer leaves,
the speed they had before should come back, not whatever the last pointer
sample happened to map to.

HOW: ``map_pointer_to_speed`` is a pure linear map from a normalized
position to characters per second. ``RateController`` adds one piece of
session state (the speed captured on the first sample) and returns new
ConditionSpec values instead of editing one in place.

RULES:
- Samples are ignored (spec returned unchanged) while rate control is off
- The base speed is captured once per activation, in cps
- Mapped speed: round(lerp(min, max, 1 - p if invert else p)), clamped,
  written with unit "cps"
- On leave: restore the captured base (clamped) only if resetOnLeave;
  the captured base is always cleared
- Disabling rate control clears the captured base, speed untouched
"""

from __future__ import annotations

import logging
from typing import Optional

from rsvp_engine.core.spec import ConditionSpec, round_half_up, speed_in_cps, with_speed

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def map_pointer_to_speed(position: float, min_cps: float, max_cps: float, invert: bool) -> float:
    """Map a pointer position in [0, 1] to a speed in [min_cps, max_cps].

    Positions outside [0, 1] are clamped first.
    """
    low, high = min(min_cps, max_cps), max(min_cps, max_cps)
    p = _clamp(float(position), 0.0, 1.0)
    t = 1.0 - p if invert else p
    return float(_clamp(round_half_up(low + (high - low) * t), low, high))


class RateController:
    """Edge-triggered pointer rate control with restore-on-leave."""

    def __init__(self) -> None:
        self._base_speed: Optional[float] = None

    @property
    def base_speed(self) -> Optional[float]:
        """Speed (cps) captured when the pointer first arrived, if any."""
        return self._base_speed

    def on_pointer(self, spec: ConditionSpec, position: float) -> ConditionSpec:
        """Apply one pointer sample; returns the (possibly new) spec."""
        rate = spec.motion.rate_control
        if not rate.enabled:
            self._base_speed = None
            return spec
        if self._base_speed is None:
            self._base_speed = speed_in_cps(spec)
            logger.debug("Rate control active, base speed %.2f cps", self._base_speed)
        speed = map_pointer_to_speed(position, rate.min_cps, rate.max_cps, rate.invert)
        return with_speed(spec, speed, "cps")

    def on_leave(self, spec: ConditionSpec) -> ConditionSpec:
        """The pointer left the control surface."""
        base, self._base_speed = self._base_speed, None
        rate = spec.motion.rate_control
        if base is None or not rate.enabled or not rate.reset_on_leave:
            return spec
        restored = _clamp(base, rate.min_cps, rate.max_cps)
        logger.debug("Rate control released, restoring %.2f cps", restored)
        return with_speed(spec, restored, "cps")

    def sync(self, spec: ConditionSpec) -> None:
        """Forget the captured base once rate control is disabled."""
        if not spec.motion.rate_control.enabled:
            self._base_speed = None
