"""Command-line interface for the RSVP reading engine.

WHY: Experimenters need to check how a text tokenizes, preview playback
at a given speed, validate condition files before a study, and start the
HTTP API, all without writing code.

HOW: argparse subcommands (tokenize, play, config export/validate, serve).
``play`` runs a ReaderSession on the asyncio event loop via asyncio.run()
and prints each window as the step scheduler reaches it. Status messages
and errors go to stderr so stdout can be piped.

RULES:
- TEXT argument "-" reads the text from stdin
- Errors print "Error: ..." to stderr and exit 1; Ctrl-C exits 130
- ``-v`` enables logging.basicConfig at INFO on stderr (DEBUG with -vv)
- ``play`` forces mode rsvp, step progression and autoplay on
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rsvp_engine import __version__, config
from rsvp_engine.core.normalizer import export_config, parse_config
from rsvp_engine.core.spec import (
    DEFAULT_SPEC,
    UNITS,
    ConditionSpec,
    with_motion,
    with_speed,
    with_tokenization,
)
from rsvp_engine.core.tokenizer import coerce_count, tokenize
from rsvp_engine.engine.timers import AsyncioTimer, TaskHandle, TimerCallback, VirtualFrameSource
from rsvp_engine.errors import MalformedConfig
from rsvp_engine.session import ReaderSession


def _status(msg: str) -> None:
    """Print a status message to stderr, flushed immediately."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _read_text(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return source


def _load_spec(path: Optional[str]) -> ConditionSpec:
    """Read a ConditionSpec file, or the defaults when no path is given.

    Raises:
        MalformedConfig: If the file content cannot be normalized.
        OSError: If the file cannot be read.
    """
    if not path:
        return DEFAULT_SPEC
    return parse_config(Path(path).read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_tokenize(args: argparse.Namespace) -> None:
    tokens = tokenize(_read_text(args.text), args.unit, args.chunk_size)
    if args.json:
        print(json.dumps(tokens, ensure_ascii=False))
        return
    for token in tokens:
        print(token)
    _status("{} token(s)".format(len(tokens)))


class _EchoTimer(AsyncioTimer):
    """AsyncioTimer that reports after every fired callback."""

    def __init__(self, on_fired: TimerCallback) -> None:
        super().__init__()
        self._on_fired = on_fired

    def call_later(self, delay_s: float, callback: TimerCallback) -> TaskHandle:
        def fire() -> None:
            callback()
            self._on_fired()

        return super().call_later(delay_s, fire)


def _play_spec(args: argparse.Namespace) -> ConditionSpec:
    spec = _load_spec(args.config)
    if args.unit is not None or args.chunk_size is not None:
        spec = with_tokenization(
            spec,
            args.unit or spec.tokenization.unit,
            coerce_count(args.chunk_size, spec.tokenization.chunk_size),
        )
    if args.speed is not None:
        if args.speed <= 0:
            raise ValueError("--speed must be positive")
        spec = with_speed(spec, args.speed, "cps")
    spec = with_motion(spec, autoplay=True, progression="step")
    if spec.mode != "rsvp":
        spec = dataclasses.replace(spec, mode="rsvp")
    return spec


async def _play(text: str, spec: ConditionSpec, loops: int) -> int:
    """Play ``text`` for ``loops`` passes; returns the number of steps shown."""
    done = asyncio.Event()
    session: Optional[ReaderSession] = None
    shown = 0

    def on_step() -> None:
        nonlocal shown
        if session is None or done.is_set():
            return
        shown += 1
        if shown >= loops * len(session.tokens):
            done.set()
            return
        print(session.current_window(), flush=True)

    # Frames are never stepped: playback here is always discrete.
    session = ReaderSession(
        text=text,
        spec=spec,
        timer=_EchoTimer(on_step),
        frames=VirtualFrameSource(),
    )
    try:
        if not session.tokens:
            return 0
        print(session.current_window(), flush=True)
        await done.wait()
    finally:
        session.close()
    return shown


def _cmd_play(args: argparse.Namespace) -> None:
    text = _read_text(args.text)
    spec = _play_spec(args)
    if not tokenize(text, spec.tokenization.unit, spec.tokenization.chunk_size):
        _fail("Nothing to play: the text has no tokens")
    _status("Playing at {} {} ({} pass(es))...".format(
        spec.motion.speed.value, spec.motion.speed.unit, args.loops,
    ))
    shown = asyncio.run(_play(text, spec, max(1, args.loops)))
    _status("Done. {} step(s).".format(shown))


def _cmd_config_export(args: argparse.Namespace) -> None:
    print(export_config(_load_spec(args.config)))


def _cmd_config_validate(args: argparse.Namespace) -> None:
    spec = _load_spec(args.file)
    _status("OK: mode={}, unit={}, chunkSize={}".format(
        spec.mode, spec.tokenization.unit, spec.tokenization.chunk_size,
    ))


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    from rsvp_engine.server.app import app

    _status("Serving on http://{}:{}".format(args.host, args.port))
    uvicorn.run(app, host=args.host, port=args.port)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() lets tests inspect the
    parser without running anything.

    RULES:
    - Every subcommand stores its handler in ``func``
    - --unit choices come from the tokenization units
    """
    parser = argparse.ArgumentParser(
        prog="rsvp-engine",
        description="Tokenize text, preview RSVP playback, manage condition "
                    "configs and serve the reading-session API.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Log engine activity to stderr (-vv for debug detail).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_tok = sub.add_parser("tokenize", help="Print the token sequence for a text.")
    p_tok.add_argument("text", help="Text to tokenize, or '-' to read stdin.")
    p_tok.add_argument("--unit", choices=UNITS, default=DEFAULT_SPEC.tokenization.unit,
                       help="Tokenization unit (default: %(default)s).")
    p_tok.add_argument("--chunk-size", type=int, default=1,
                       help="Base tokens per token (default: %(default)s).")
    p_tok.add_argument("--json", action="store_true", help="Print the tokens as a JSON array.")
    p_tok.set_defaults(func=_cmd_tokenize)

    p_play = sub.add_parser("play", help="Play a text in the terminal, one window per line.")
    p_play.add_argument("text", help="Text to play, or '-' to read stdin.")
    p_play.add_argument("--config", default=None, help="ConditionSpec JSON file to start from.")
    p_play.add_argument("--speed", type=float, default=None,
                        help="Speed in characters per second (overrides the config).")
    p_play.add_argument("--unit", choices=UNITS, default=None, help="Tokenization unit override.")
    p_play.add_argument("--chunk-size", type=int, default=None, help="Chunk size override.")
    p_play.add_argument("--loops", type=int, default=1,
                        help="Number of passes through the text (default: %(default)s).")
    p_play.set_defaults(func=_cmd_play)

    p_cfg = sub.add_parser("config", help="Export or validate ConditionSpec files.")
    cfg_sub = p_cfg.add_subparsers(dest="config_command", required=True)
    p_export = cfg_sub.add_parser("export", help="Print a normalized ConditionSpec as JSON.")
    p_export.add_argument("--config", default=None,
                          help="File to normalize and re-export (default: built-in defaults).")
    p_export.set_defaults(func=_cmd_config_export)
    p_validate = cfg_sub.add_parser("validate", help="Check that a ConditionSpec file imports.")
    p_validate.add_argument("file", help="Path to the ConditionSpec JSON file.")
    p_validate.set_defaults(func=_cmd_config_validate)

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    p_serve.add_argument("--host", default=config.API_HOST, help="Bind address (default: %(default)s).")
    p_serve.add_argument("--port", type=int, default=config.API_PORT,
                         help="Bind port (default: %(default)s).")
    p_serve.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``python -m rsvp_engine`` and the rsvp-engine script.

    RULES:
    - argv=None means use sys.argv; explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
            stream=sys.stderr,
        )

    try:
        args.func(args)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except MalformedConfig as e:
        _fail(e.reason)
    except (OSError, ValueError) as e:
        _fail(str(e))


if __name__ == "__main__":
    main()
