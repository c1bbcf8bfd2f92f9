# src/studytrack/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
import re
import shlex
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from ..config import get_settings
from ..core.engine import StudyEngine
from ..errors import NotFoundError, StudyTrackError, ValidationError
from ..tasks.task_filters import sort_for_display
from ..tasks.task_models import DEFAULT_SUBJECTS, Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[StudyEngine, list[str]], str]
CommandHandler3 = Callable[[StudyEngine, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

SHORT_ID = 8
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

# /add and /update option names -> TaskStore field names
_TASK_OPTIONS = {
    "title": "title",
    "desc": "description",
    "description": "description",
    "subject": "subject",
    "priority": "priority",
    "due": "due_date",
    "progress": "progress",
    "minutes": "study_minutes",
}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

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

    def handle(
        self,
        engine: StudyEngine,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Engine errors are rendered as the reply; state is unchanged for them.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}"
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

        try:
            if nparams >= 3:
                return cast(CommandHandler3, handler)(engine, args, emit)
            return cast(CommandHandler2, handler)(engine, args)
        except StudyTrackError as e:
            logger.debug("Command /%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- parsing helpers ----


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key.replace("-", "_")).lower()


def _parse_value(raw: str) -> Any:
    low = raw.strip().lower()
    if low in ("on", "true", "yes"):
        return True
    if low in ("off", "false", "no"):
        return False
    with contextlib.suppress(ValueError):
        return int(raw)
    return raw


def _split_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split ["Read", "Ch.1", "subject=History"] into positional words and key=value options."""
    words: list[str] = []
    opts: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if sep and key and " " not in key:
            opts[key] = value
        else:
            words.append(arg)
    return words, opts


def _task_patch(opts: dict[str, str]) -> dict[str, Any]:
    patch: dict[str, Any] = {}
    for key, value in opts.items():
        field = _TASK_OPTIONS.get(key.lower())
        if field is None:
            raise ValidationError(f"unknown option {key}= (use: {', '.join(sorted(_TASK_OPTIONS))})")
        patch[field] = value if value != "" else None
    return patch


def resolve_task_id(engine: StudyEngine, raw: str) -> str:
    """Accept a full id or a unique prefix of one."""
    raw = raw.strip()
    ids = [t.id for t in engine.tasks()]
    if raw in ids:
        return raw
    matches = [i for i in ids if raw and i.startswith(raw)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValidationError(f"ambiguous task id prefix: {raw}")
    raise NotFoundError("task", raw)


def _need_id(engine: StudyEngine, args: list[str], usage: str) -> str:
    if not args:
        raise ValidationError(f"usage: {usage}")
    return resolve_task_id(engine, args[0])


# ---- formatting helpers ----


def _fmt_dt(dt: datetime | None) -> str:
    return dt.strftime("%Y-%m-%d %H:%M") if dt else "-"


def format_task(task: Task) -> str:
    mark = "A" if task.archived else ("x" if task.completed else " ")
    bits = [task.subject, task.priority.value]
    if task.due_date:
        bits.append(f"due {_fmt_dt(task.due_date)}")
    bits.append(f"{task.progress}%")
    if task.study_minutes:
        bits.append(f"{task.study_minutes} min")
    return f"[{mark}] {task.id[:SHORT_ID]}  {task.title} ({', '.join(bits)})"


def _fmt_minutes(minutes: int) -> str:
    h, m = divmod(int(minutes), 60)
    return f"{h}h {m:02d}m" if h else f"{m}m"


# ---- commands ----


def cmd_help(engine: StudyEngine, args: list[str]) -> str:
    return registry.build_help()


def cmd_add(engine: StudyEngine, args: list[str]) -> str:
    """
    /add <title> [subject=..] [priority=low|medium|high] [due=ISO] [progress=0..100] [desc=..]
    """
    words, opts = _split_options(args)
    patch = _task_patch(opts)
    title = patch.pop("title", None) or " ".join(words)
    if "study_minutes" in patch:
        raise ValidationError("minutes= is tracked through /log")
    task = engine.create_task(
        title=title,
        description=patch.get("description") or "",
        subject=patch.get("subject"),
        priority=patch.get("priority") or "medium",
        due_date=patch.get("due_date"),
        progress=patch.get("progress") or 0,
    )
    return f"Added: {format_task(task)}"


def cmd_update(engine: StudyEngine, args: list[str]) -> str:
    task_id = _need_id(engine, args, "/update <id> key=value ...")
    _, opts = _split_options(args[1:])
    if not opts:
        raise ValidationError("nothing to update (use key=value options)")
    task = engine.update_task(task_id, _task_patch(opts))
    return f"Updated: {format_task(task)}"


def cmd_done(engine: StudyEngine, args: list[str]) -> str:
    task_id = _need_id(engine, args, "/done <id>")
    task = engine.update_task(task_id, {"completed": True})
    return f"Completed: {format_task(task)}"


def cmd_undo(engine: StudyEngine, args: list[str]) -> str:
    task_id = _need_id(engine, args, "/undo <id>")
    task = engine.update_task(task_id, {"completed": False})
    return f"Reopened: {format_task(task)}"


def cmd_progress(engine: StudyEngine, args: list[str]) -> str:
    if len(args) < 2:
        raise ValidationError("usage: /progress <id> <0..100>")
    task_id = resolve_task_id(engine, args[0])
    task = engine.update_task(task_id, {"progress": args[1]})
    return f"Progress: {format_task(task)}"


def cmd_archive(engine: StudyEngine, args: list[str]) -> str:
    task = engine.archive_task(_need_id(engine, args, "/archive <id>"))
    return f"Archived: {format_task(task)}"


def cmd_restore(engine: StudyEngine, args: list[str]) -> str:
    task = engine.restore_task(_need_id(engine, args, "/restore <id>"))
    return f"Restored: {format_task(task)}"


def cmd_delete(engine: StudyEngine, args: list[str]) -> str:
    task = engine.delete_task(_need_id(engine, args, "/delete <id>"))
    return f"Deleted: {task.title}"


def cmd_log(engine: StudyEngine, args: list[str]) -> str:
    """
    /log <minutes> [task=<id>] [subject=..] [at=ISO] [interrupted]
    """
    words, opts = _split_options(args)
    if not words:
        raise ValidationError("usage: /log <minutes> [task=<id>] [subject=..] [at=ISO] [interrupted]")
    try:
        minutes = int(words[0])
    except ValueError:
        raise ValidationError(f"minutes must be a number (got {words[0]!r})") from None

    task_id = resolve_task_id(engine, opts["task"]) if opts.get("task") else None
    session = engine.log_session(
        duration_minutes=minutes,
        task_id=task_id,
        subject=opts.get("subject"),
        start_time=opts.get("at") or None,
        completed="interrupted" not in (w.lower() for w in words[1:]),
    )
    reply = f"Logged {session.duration_minutes} min of {session.subject} on {session.day_key}."
    if engine.last_unlocked:
        reply += "\nUnlocked: " + ", ".join(engine.last_unlocked)
    return reply


def cmd_tasks(engine: StudyEngine, args: list[str]) -> str:
    flt = args[0] if args else "all"
    tasks = engine.tasks(flt)
    if not tasks:
        return f"No tasks ({flt})."
    ordered = sort_for_display(tasks, engine.now(), prioritize_overdue=engine.settings().prioritize_overdue)
    lines = [f"Tasks ({flt}, {len(ordered)}):"]
    lines.extend(f"  {format_task(t)}" for t in ordered)
    soon = set(engine.archiving_soon())
    if soon:
        lines.append(f"  {len(soon)} completed task(s) will be archived within 24h.")
    return "\n".join(lines)


def cmd_filters(engine: StudyEngine, args: list[str]) -> str:
    return "Filters: " + ", ".join(f.value for f in engine.available_filters())


def cmd_stats(engine: StudyEngine, args: list[str]) -> str:
    engine.refresh()
    s = engine.stats()
    gp = s.goal_progress
    days = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
    lines = [
        "Stats:",
        f"  Total study time: {_fmt_minutes(s.total_study_time)} (daily avg {s.daily_average} min)",
        f"  Tasks: {s.tasks_completed}/{s.tasks_created} completed",
        f"  Sessions: {s.sessions_completed} completed, {s.pomodoros_completed} logged",
        f"  Today: {_fmt_minutes(gp.daily_study_time)} ({gp.daily_percent}% of daily goal)",
        f"  This week: {_fmt_minutes(gp.weekly_study_time)} ({gp.weekly_study_percent}%), "
        f"{gp.weekly_tasks_completed} task(s) ({gp.weekly_tasks_percent}%)",
        "  Week: " + " ".join(f"{d}={m}" for d, m in zip(days, s.weekly_study_time)),
    ]
    if s.subject_distribution:
        lines.append(
            "  Subjects: " + ", ".join(f"{k}={_fmt_minutes(v)}" for k, v in s.subject_distribution.items())
        )
    busy = [(h, m) for h, m in s.productivity_by_hour.items() if m]
    if busy:
        lines.append("  Hours: " + ", ".join(f"{h:02d}h={m}" for h, m in busy))
    return "\n".join(lines)


def cmd_streak(engine: StudyEngine, args: list[str]) -> str:
    engine.refresh()
    st = engine.streaks()
    last = st.last_active_day.isoformat() if st.last_active_day else "never"
    return f"Streak: current {st.current_streak} day(s), longest {st.longest_streak}, last active {last}."


def cmd_achievements(engine: StudyEngine, args: list[str]) -> str:
    state = engine.achievements()
    lines = ["Achievements:"]
    for rule in sorted(engine.achievement_rules(), key=lambda r: r.id):
        value = state.progress.get(rule.id, 0)
        if state.is_unlocked(rule.id):
            lines.append(f"  [*] {rule.title} (unlocked {state.unlocked_at.get(rule.id, '')[:10]})")
        else:
            lines.append(f"  [ ] {rule.title} ({min(value, rule.threshold)}/{rule.threshold})")
    return "\n".join(lines)


def cmd_settings(engine: StudyEngine, args: list[str]) -> str:
    data = engine.settings().to_dict()
    filters = data.pop("enabledFilters")
    lines = ["Settings:"]
    lines.extend(f"  {k} = {v}" for k, v in data.items())
    lines.append("  enabledFilters = " + ", ".join(k for k, v in filters.items() if v))
    last = engine.last_backup_at()
    lines.append(f"  lastBackup = {_fmt_dt(last) if last else 'never'}")
    return "\n".join(lines)


def cmd_set(engine: StudyEngine, args: list[str]) -> str:
    """
    /set key=value ...         e.g. /set dailyGoalMinutes=90 autoArchive=on
    /set filter.<name>=on|off  toggles a task list filter
    """
    _, opts = _split_options(args)
    if not opts:
        raise ValidationError("usage: /set key=value ...")
    patch: dict[str, Any] = {}
    filters: dict[str, Any] = {}
    for key, raw in opts.items():
        if key.startswith("filter."):
            filters[_snake(key.split(".", 1)[1])] = _parse_value(raw)
        else:
            patch[_snake(key)] = _parse_value(raw)
    if filters:
        patch["enabled_filters"] = filters
    engine.update_settings(patch)
    return "Settings updated: " + ", ".join(sorted(opts))


def cmd_export(engine: StudyEngine, args: list[str], emit: CommandEmitter | None = None) -> str:
    if args:
        path = Path(args[0]).expanduser()
    else:
        stamp = datetime.now().astimezone().strftime("%Y%m%d-%H%M%S")
        path = get_settings().export_dir / f"studytrack-{stamp}.json"
    if emit:
        emit(f"Exporting to {path} ...")
    doc = engine.export_data(path)
    return f"Exported {len(doc['tasks'])} task(s) and {len(doc['sessions'])} session(s) to {path}."


def cmd_import(engine: StudyEngine, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        raise ValidationError("usage: /import <path>")
    path = Path(args[0]).expanduser()
    if emit:
        emit(f"Importing {path} ...")
    summary = engine.import_data(path)
    return f"Imported {summary.tasks} task(s) and {summary.sessions} session(s)."


def cmd_archive_now(engine: StudyEngine, args: list[str]) -> str:
    result = engine.archive_old_tasks_now()
    return f"Archive run: {len(result.archived_ids)} archived, {len(result.deleted_ids)} deleted."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register(
    "add",
    cmd_add,
    help_text=(
        "Add a task: /add <title> [subject=..] [priority=..] [due=..]. "
        f"Subjects: {', '.join(DEFAULT_SUBJECTS)} or free text."
    ),
)
registry.register("update", cmd_update, help_text="Edit a task: /update <id> key=value ...")
registry.register("done", cmd_done, help_text="Mark a task completed: /done <id>.")
registry.register("undo", cmd_undo, help_text="Reopen a completed task: /undo <id>.")
registry.register("progress", cmd_progress, help_text="Set task progress: /progress <id> <0..100>.")
registry.register("archive", cmd_archive, help_text="Archive a completed task: /archive <id>.")
registry.register("restore", cmd_restore, help_text="Restore an archived task: /restore <id>.")
registry.register("delete", cmd_delete, help_text="Delete a task permanently: /delete <id>.", aliases=["rm"])
registry.register("log", cmd_log, help_text="Log a study session: /log <minutes> [task=<id>] [subject=..].")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [all|today|upcoming|overdue|...].", aliases=["ls"])
registry.register("filters", cmd_filters, help_text="Show the enabled task filters.")
registry.register("stats", cmd_stats, help_text="Show study statistics.")
registry.register("streak", cmd_streak, help_text="Show the current and longest streak.")
registry.register("achievements", cmd_achievements, help_text="Show achievements and progress.")
registry.register("settings", cmd_settings, help_text="Show user settings.")
registry.register("set", cmd_set, help_text="Change settings: /set key=value ... | /set filter.<name>=on|off.")
registry.register("export", cmd_export, help_text="Export a backup: /export [path].")
registry.register("import", cmd_import, help_text="Replace all data from a backup: /import <path>.")
registry.register("archive-now", cmd_archive_now, help_text="Run the archive policy now.")
