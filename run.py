"""Legacy entry point for the TrackDeck CLI."""

from __future__ import annotations

import os
import sys


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)

    # Check for --debug flag BEFORE any imports that use logging
    if "--debug" in args:
        args.remove("--debug")
        args = [*args, "--log-level", "DEBUG"]
        os.environ["TRACKDECK_AUDIO_TRACE"] = "1"

    from trackdeck.cli import main as cli_main

    return cli_main(args)


if __name__ == "__main__":
    raise SystemExit(main())
