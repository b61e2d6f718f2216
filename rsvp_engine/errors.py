"""Exception types raised by the reading engine.

WHY: The engine has exactly one user-visible failure: importing a
configuration document that cannot be turned into a ConditionSpec. Callers
(CLI, HTTP API, embedding UIs) need a single type to catch and a readable
reason to show.

RULES:
- MalformedConfig is a ValueError so generic input handlers still catch it
- The reason string is human readable and surfaced verbatim
- Empty text and out-of-range indices are never errors
"""

from __future__ import annotations


class RsvpError(Exception):
    """Base class for reading-engine errors."""


class MalformedConfig(RsvpError, ValueError):
    """A configuration document failed validation on import.

    Attributes:
        reason: Human-readable description of what was wrong.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
