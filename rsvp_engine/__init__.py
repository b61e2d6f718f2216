"""RSVP reading engine — tokenization and pacing for speed-reading surfaces.

WHY: Rapid serial visual presentation needs text cut into stable display
units and a clock that advances through them at a controllable pace. The
rendering surface (browser page, terminal, desktop widget) should not have
to know how either of those works.

HOW: Three layers. core (pure tokenization, windowing and configuration
normalization), engine (step scheduler, continuous animator, pointer rate
control) and session (wires the engines to one text and one ConditionSpec).
The CLI and HTTP API are thin shells over ReaderSession.

RULES:
- Core functions are pure and total: no exceptions for empty or odd input
- Only configuration import can fail, with MalformedConfig
- ConditionSpec is frozen; every change replaces the whole value
"""

__version__ = "0.1.0"
