# src/deepwork/cli/console.py

from __future__ import annotations

import logging
from datetime import datetime

from ..core.state import AppState
from ..errors import DeepWorkError
from .commands import registry as command_registry

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def run_command(state: AppState, line: str) -> tuple[str, bool]:
    """
    Run one slash command and return (reply, ok).

    Domain errors become a readable reply; anything else is logged with a traceback.
    """
    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    try:
        reply = command_registry.handle(state, line, emit=emit)
    except DeepWorkError as e:
        logger.info("Command %r failed: %s: %s", line, type(e).__name__, e)
        return f"{type(e).__name__}: {e}", False
    except Exception:
        logger.exception("Command handler crashed.")
        return "Internal error while handling a command.", False

    if reply is None:
        return "Commands start with '/'. Use /help to list them.", False
    return reply, True


def run_console_loop(state: AppState) -> None:
    logger.info("Console started db=%s", state.store.db_path)
    app_name = str(getattr(state.settings, "app_name", "deepwork"))
    _print_ts(f"[{app_name}] Use /help for commands, /exit to quit.")

    snap = state.focus.current()
    if snap is not None:
        task = state.focus.focusing_task()
        if task is not None:
            _print_ts(f"Session still open on {task.title!r}. Use /finish or /abandon.")

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        reply, _ = run_command(state, user_input)
        _print_ts(reply)

    logger.info("Console finished.")
