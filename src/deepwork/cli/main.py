# src/deepwork/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then either:
- runs one command given on the command line (`deepwork /list`), or
- starts the interactive console loop.
"""

from __future__ import annotations

import logging
import sys

from .bootstrap import create_initial_state
from ..config import get_settings
from ..errors import DeepWorkError
from ..logging_setup import setup_logging
from .console import run_command, run_console_loop

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "WARNING")).upper()
    console_level = getattr(logging, level_name, logging.WARNING)
    log_dir = settings.data_dir if getattr(settings, "log_to_file", True) else None
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        state = create_initial_state(settings=settings)
    except DeepWorkError as e:
        logger.error("Cannot open local data: %s", e)
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1

    if argv:
        line = " ".join(argv)
        if not line.startswith("/"):
            line = "/" + line
        reply, ok = run_command(state, line)
        print(reply)
        return 0 if ok else 1

    run_console_loop(state)
    logger.info("Bye.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
