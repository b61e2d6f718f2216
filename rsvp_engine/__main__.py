"""Package entry point for ``python -m rsvp_engine``.

WHY: Users run the reader as ``python -m rsvp_engine play "some text"``
without installing the console script.

HOW: Delegates to the CLI's main() function.
"""

if __name__ == "__main__":
    from rsvp_engine.cli import main
    main()
