# src/deepwork/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from pathlib import Path
from typing import cast

from ..core.state import AppState
from ..errors import InvalidArgument, NotFound
from ..storage.backup import export_backup, import_backup, read_backup_file, write_backup_file
from ..tasks.recommend import Candidate, recommend
from ..tasks.task_models import Task, TaskCategory, TaskState
from ..tasks.task_repo import remaining_minutes
from ..timeutil import parse_iso

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

SHORT_ID = 8


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, /start, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Domain errors propagate to the connector.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument helpers ----


def _pop_option(args: list[str], name: str) -> str | None:
    if name not in args:
        return None
    i = args.index(name)
    if i + 1 >= len(args):
        raise InvalidArgument(f"{name} needs a value")
    value = args[i + 1]
    del args[i : i + 2]
    return value


def _pop_flag(args: list[str], name: str) -> bool:
    if name in args:
        args.remove(name)
        return True
    return False


def _parse_int(raw: str, what: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgument(f"{what} must be an integer, got {raw!r}") from None


def _resolve_task(state: AppState, ref: str | None) -> Task:
    """Find a task by full id or unique id prefix."""
    if not ref:
        raise InvalidArgument("task id (or unique prefix) required")
    matches = [t for t in state.repo.list_tasks() if t.id == ref or t.id.startswith(ref)]
    exact = [t for t in matches if t.id == ref]
    if exact:
        return exact[0]
    if not matches:
        raise NotFound(f"No task matches {ref!r}", collection="tasks", record_id=ref)
    if len(matches) > 1:
        raise InvalidArgument(f"{ref!r} is ambiguous ({len(matches)} tasks); use more characters")
    return matches[0]


def _fmt_task(state: AppState, t: Task) -> str:
    fmt = state.prefs.format
    est = fmt(t.estimate_minutes) if t.estimate_minutes is not None else "-"
    rem = remaining_minutes(t)
    rem_s = f", left {fmt(rem)}" if rem is not None else ""
    cat = "" if t.category == TaskCategory.WORK else f" [{t.category}]"
    return f"{t.id[:SHORT_ID]}  {t.state:<8} {t.title}{cat}  (est {est}, spent {fmt(t.spent_minutes)}{rem_s})"


def _fmt_candidate(state: AppState, c: Candidate) -> str:
    left = state.prefs.format(c.remaining_minutes) if c.remaining_minutes is not None else "no estimate"
    return f"{c.task.id[:SHORT_ID]}  {c.task.title}  ({left})"


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    snap = state.focus.current()
    if snap is None:
        focus_line = "idle"
    else:
        task = state.focus.focusing_task()
        title = task.title if task else snap.task_id
        focus_line = f"focusing on {title} for {state.prefs.format(state.focus.elapsed_minutes())}"
    return (
        "Status:\n"
        f"  Database: {state.store.db_path}\n"
        f"  Session: {focus_line}\n"
        f"  Today: {state.prefs.format(state.repo.today_minutes())}"
    )


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title...> [--est N] [--cat work|leisure]
    """
    args = list(args)
    est_raw = _pop_option(args, "--est")
    cat = _pop_option(args, "--cat") or TaskCategory.WORK.value
    estimate = _parse_int(est_raw, "estimate") if est_raw is not None else None
    task = state.repo.create_task(" ".join(args), estimate_minutes=estimate, category=cat)
    return f"Added {task.id[:SHORT_ID]}: {task.title}"


def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.repo.list_active()
    if not tasks:
        return "No active tasks. Use /add to create one."
    return "\n".join(["Active tasks:", *(f"  {_fmt_task(state, t)}" for t in tasks)])


def cmd_done_list(state: AppState, args: list[str]) -> str:
    tasks = state.repo.list_done()
    if not tasks:
        return "No archived tasks."
    return "\n".join(["Archived tasks:", *(f"  {_fmt_task(state, t)}" for t in tasks)])


def cmd_show(state: AppState, args: list[str]) -> str:
    task = _resolve_task(state, args[0] if args else None)
    lines = [_fmt_task(state, task), f"  id: {task.id}", f"  sessions: {task.session_count}"]
    if task.state == TaskState.WARM:
        if task.last_finish_note:
            lines.append(f"  next step: {task.last_finish_note}")
        if task.last_session_end_at:
            when = parse_iso(task.last_session_end_at).astimezone().strftime("%Y-%m-%d %H:%M")
            lines.append(f"  last session ended: {when}")
    for s in state.repo.list_sessions_for_task(task.id)[-5:]:
        note = f" - {s.note_snapshot}" if s.note_snapshot else ""
        lines.append(f"  * {s.end_at[:16].replace('T', ' ')}  {state.prefs.format(s.minutes)}{note}")
    return "\n".join(lines)


def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <id> [--title "..."] [--est N|none] [--cat work|leisure]
    """
    args = list(args)
    est_raw = _pop_option(args, "--est")
    cat = _pop_option(args, "--cat")
    title_given = "--title" in args
    title_words: list[str] = []
    if title_given:
        i = args.index("--title")
        title_words = args[i + 1 :]
        del args[i:]
    task = _resolve_task(state, args[0] if args else None)

    changes: dict[str, object] = {}
    if title_given:
        changes["title"] = " ".join(title_words)
    if est_raw is not None:
        changes["estimate_minutes"] = None if est_raw.lower() == "none" else _parse_int(est_raw, "estimate")
    if cat is not None:
        changes["category"] = cat
    if not changes:
        return "Nothing to change. Usage: /edit <id> [--est N|none] [--cat work|leisure] [--title ...]"
    task = state.repo.update_task(task.id, **changes)
    return f"Updated: {_fmt_task(state, task)}"


def cmd_start(state: AppState, args: list[str]) -> str:
    task = _resolve_task(state, args[0] if args else None)
    task = state.focus.start(task.id)
    hint = f"\nNext step: {task.last_finish_note}" if task.last_finish_note else ""
    return f"Focusing on {task.title}. Use /finish [note] or /abandon.{hint}"


def cmd_finish(state: AppState, args: list[str]) -> str:
    """
    /finish [--min N] [next first step...]
    """
    args = list(args)
    min_raw = _pop_option(args, "--min")
    minutes = _parse_int(min_raw, "minutes") if min_raw is not None else None
    note = " ".join(args) or None
    before = state.focus.focusing_task()
    task = state.focus.finish(note, minutes=minutes)
    gained = task.spent_minutes - (before.spent_minutes if before else 0)
    return f"Recorded {state.prefs.format(gained)} on {task.title} (total {state.prefs.format(task.spent_minutes)})."


def cmd_abandon(state: AppState, args: list[str]) -> str:
    task = state.focus.abandon()
    if task is None:
        return "Session closed (task no longer exists)."
    return f"Left {task.title} without recording; back to {task.state}."


def cmd_done(state: AppState, args: list[str]) -> str:
    task = _resolve_task(state, args[0] if args else None)
    task = state.focus.mark_done(task.id)
    return f"Archived {task.title}."


def cmd_restore(state: AppState, args: list[str]) -> str:
    task = _resolve_task(state, args[0] if args else None)
    task = state.repo.restore(task.id)
    return f"Restored {task.title} as {task.state}."


def cmd_delete(state: AppState, args: list[str]) -> str:
    args = list(args)
    confirmed = _pop_flag(args, "--yes")
    task = _resolve_task(state, args[0] if args else None)
    if not confirmed:
        return f"This permanently deletes {task.title!r}. Repeat with --yes to confirm."
    state.focus.delete_task(task.id)
    return f"Deleted {task.title}. Its sessions stay in your totals."


def cmd_recommend(state: AppState, args: list[str]) -> str:
    """
    /recommend [minutes]   (default: saved time preference)
    """
    if args:
        window = _parse_int(args[0], "time window")
        state.prefs.save_time_preference(window, custom=window)
    else:
        window = state.prefs.time_preference()
    category = getattr(state.settings, "recommend_category", TaskCategory.WORK.value)
    rec = recommend(state.repo.list_tasks(), window, category=category)

    lines = [f"For {state.prefs.format(window)}:"]
    if rec.top is not None:
        lines.append(f"  -> {_fmt_candidate(state, rec.top)}")
        lines.extend(f"     {_fmt_candidate(state, c)}" for c in rec.alternatives)
    if rec.message:
        lines.append(f"  {rec.message}")
    return "\n".join(lines)


def cmd_stats(state: AppState, args: list[str]) -> str:
    fmt = state.prefs.format
    lines = [f"Today: {fmt(state.repo.today_minutes())}", f"All time: {fmt(state.repo.total_minutes())}"]
    for cat in TaskCategory:
        lines.append(f"  {cat}: {fmt(state.repo.total_minutes(cat))}")
    return "\n".join(lines)


def cmd_pref(state: AppState, args: list[str]) -> str:
    """
    /pref                       -> show preferences
    /pref window N [custom]     -> preferred time window
    /pref format minutes|hm     -> duration display
    """
    if not args:
        return "\n".join(["Preferences:", *(f"  {k} = {v}" for k, v in state.prefs.all().items())])

    sub = args[0].lower()
    if sub == "window" and len(args) >= 2:
        minutes = _parse_int(args[1], "window")
        custom = _parse_int(args[2], "custom") if len(args) >= 3 else None
        state.prefs.save_time_preference(minutes, custom=custom)
        return f"Time preference set to {state.prefs.format(minutes)}."
    if sub == "format" and len(args) >= 2:
        state.prefs.set("durationFormat", args[1].lower())
        return f"Durations now shown as {state.prefs.format(90)} for 90 minutes."
    return "Usage: /pref | /pref window N [custom] | /pref format minutes|hm"


def cmd_export(state: AppState, args: list[str]) -> str:
    payload = export_backup(state.store, clock=state.clock)
    if args:
        path = Path(args[0]).expanduser()
    else:
        stamp = parse_iso(payload["exported_at"]).strftime("%Y%m%d-%H%M%S")
        backup_dir = Path(getattr(state.settings, "backup_dir", "backups"))
        path = backup_dir / f"deepwork-backup-{stamp}.json"
    write_backup_file(path, payload)
    return (
        f"Exported {len(payload['tasks'])} tasks, {len(payload['sessions'])} sessions, "
        f"{len(payload['settings'])} settings to {path}"
    )


def cmd_import(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /import <path> --yes   (replaces ALL local data)
    """
    args = list(args)
    confirmed = _pop_flag(args, "--yes")
    if not args:
        return "Usage: /import <path> --yes"
    payload = read_backup_file(Path(args[0]).expanduser())
    if not confirmed:
        return "Import replaces all tasks, sessions and settings. Repeat with --yes to confirm."
    if emit:
        emit("[IMPORT] Replacing local data...")
    counts = import_backup(state.store, payload)
    state.focus.rehydrate()
    return f"Imported {counts.get('tasks', 0)} tasks, {counts.get('sessions', 0)} sessions."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show the open session and today's total.")
registry.register("add", cmd_add, help_text="Add a task: /add <title> [--est N] [--cat work|leisure].")
registry.register("list", cmd_list, help_text="List active tasks.", aliases=["ls"])
registry.register("done-list", cmd_done_list, help_text="List archived tasks.", aliases=["archive"])
registry.register("show", cmd_show, help_text="Task details and recent sessions: /show <id>.")
registry.register("edit", cmd_edit, help_text="Edit: /edit <id> [--est N|none] [--cat C] [--title ...].")
registry.register("start", cmd_start, help_text="Start focusing: /start <id>.")
registry.register("finish", cmd_finish, help_text="Finish the session: /finish [--min N] [next step].")
registry.register("abandon", cmd_abandon, help_text="Leave the session without recording time.")
registry.register("done", cmd_done, help_text="Archive a task: /done <id>.")
registry.register("restore", cmd_restore, help_text="Bring an archived task back: /restore <id>.")
registry.register("delete", cmd_delete, help_text="Delete a task: /delete <id> --yes.")
registry.register("recommend", cmd_recommend, help_text="What next? /recommend [minutes].", aliases=["next"])
registry.register("stats", cmd_stats, help_text="Today's and lifetime focus totals.")
registry.register("pref", cmd_pref, help_text="Preferences: /pref window N | /pref format minutes|hm.")
registry.register("export", cmd_export, help_text="Write a backup: /export [path].")
registry.register("import", cmd_import, help_text="Restore a backup (replaces everything): /import <path> --yes.")
