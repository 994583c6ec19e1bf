# src/learn_buddy/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from ..core.errors import LearnBuddyError
from ..core.state import AppState
from ..llm.schemas import GeneratePathwayOutput
from ..tasks.task_models import SubTask, Task

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /add, ...)."""

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

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Application errors were already reported to the user through the
        notifier, so they turn into an empty reply here.
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
            return await handler(state, args)
        except LearnBuddyError as e:
            logger.debug("/%s failed: %s", name, e)
            return ""

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- addressing helpers ----


def listed_tasks(state: AppState) -> list[Task]:
    """Tasks in /list order: pending first, then completed."""
    if not state.session.tasks:
        return []
    controller = state.session.controller
    return controller.pending() + controller.completed()


def resolve_task(state: AppState, ref: str) -> Task | None:
    """Find a task by 1-based position in /list order, or by id."""
    tasks = listed_tasks(state)
    if ref.isascii() and ref.isdigit():
        pos = int(ref)
        if 1 <= pos <= len(tasks):
            return tasks[pos - 1]
    return state.session.controller.get(ref)


def resolve_subtask(task: Task, ref: str) -> SubTask | None:
    if ref.isascii() and ref.isdigit():
        pos = int(ref)
        if 1 <= pos <= len(task.subtasks):
            return task.subtasks[pos - 1]
    for sub in task.subtasks:
        if sub.id == ref:
            return sub
    return None


def format_task(pos: int, task: Task) -> list[str]:
    mark = "x" if task.completed else " "
    points = f" ({task.story_points} pts)" if task.story_points else ""
    new = " *new*" if task.is_new else ""
    lines = [f"{pos:>3}. [{mark}] {task.description}{points}{new}  #{task.id}"]
    for i, sub in enumerate(task.subtasks, start=1):
        sub_mark = "x" if sub.completed else " "
        lines.append(f"       {i}. [{sub_mark}] {sub.description}")
    return lines


def format_pathway(pathway: GeneratePathwayOutput) -> str:
    lines = [f"Pathway: {pathway.pathway_title}"]
    for i, step in enumerate(pathway.steps, start=1):
        lines.append(f"  {i}. {step.task_description}")
        for sub in step.subtasks or []:
            lines.append(f"       - {sub}")
    return "\n".join(lines)


# ---- commands ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str]) -> str:
    session = state.session
    tasks = session.tasks
    done = sum(1 for t in tasks if t.completed)
    model = getattr(state.llm, "model", None) or "offline"
    return (
        "Status:\n"
        f"  Identity: {session.identity or '(signed out)'}\n"
        f"  Backend: {session.backend_name}\n"
        f"  Tasks: {len(tasks)} ({done} completed)\n"
        f"  Model: {model}"
    )


async def cmd_list(state: AppState, args: list[str]) -> str:
    if not state.session.tasks:
        return "No tasks yet. Add one with /add <description>."
    controller = state.session.controller
    lines: list[str] = []
    pos = 0
    for title, section in (
        ("Pending Tasks", controller.pending()),
        ("Completed Tasks", controller.completed()),
    ):
        lines.append(f"{title} ({len(section)})")
        for task in section:
            pos += 1
            lines.extend(format_task(pos, task))
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    task = await state.session.controller.add_task(" ".join(args))
    return f"Added #{task.id}."


async def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task>"
    task = resolve_task(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    await state.session.controller.toggle_complete(task.id)
    return f"'{task.description}' marked {'pending' if task.completed else 'completed'}."


async def cmd_points(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /points <task> <n>"
    task = resolve_task(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    await state.session.controller.set_story_points(task.id, args[1])
    return f"Story points of '{task.description}' set to {args[1]}."


async def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <task>"
    task = resolve_task(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    await state.session.controller.delete_task(task.id)
    return ""


async def cmd_clear_done(state: AppState, args: list[str]) -> str:
    await state.session.controller.delete_all_completed()
    return ""


async def cmd_sub(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /sub <task> <description>"
    task = resolve_task(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    sub = await state.session.controller.add_subtask(task.id, " ".join(args[1:]))
    if sub is None:
        return f"No task {args[0]}."
    return f"Subtask added to '{task.description}'."


async def cmd_subdone(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /subdone <task> <subtask>"
    task = resolve_task(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    sub = resolve_subtask(task, args[1])
    if sub is None:
        return f"No subtask {args[1]} in '{task.description}'."
    await state.session.controller.toggle_subtask_complete(task.id, sub.id)
    return f"'{sub.description}' marked {'pending' if sub.completed else 'completed'}."


async def cmd_subrm(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /subrm <task> <subtask>"
    task = resolve_task(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    sub = resolve_subtask(task, args[1])
    if sub is None:
        return f"No subtask {args[1]} in '{task.description}'."
    await state.session.controller.delete_subtask(task.id, sub.id)
    return ""


async def cmd_estimate(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /estimate <task>"
    task = resolve_task(state, args[0])
    if task is None:
        return f"No task {args[0]}."
    await state.session.controller.estimate_effort(task.id)
    return ""


async def cmd_suggest(state: AppState, args: list[str]) -> str:
    return await state.session.controller.suggest_organization()


async def cmd_pathway(state: AppState, args: list[str]) -> str:
    pathway = await state.session.controller.generate_pathway(" ".join(args))
    state.pending_pathway = pathway
    if pathway.is_empty:
        return f"Pathway '{pathway.pathway_title}' has no steps."
    return format_pathway(pathway) + "\nUse /accept to add these tasks."


async def cmd_accept(state: AppState, args: list[str]) -> str:
    pathway = state.pending_pathway
    if pathway is None:
        return "No pathway to accept. Generate one with /pathway <goal>."
    await state.session.controller.add_pathway(pathway)
    state.pending_pathway = None
    return ""


async def cmd_login(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /login <user-id>"
    state.identity.sign_in(args[0])
    state.pending_pathway = None
    await state.session.wait_ready()
    return f"Signed in as {state.session.identity}."


async def cmd_logout(state: AppState, args: list[str]) -> str:
    if state.identity.current_identity() is None:
        return "Not signed in."
    state.identity.sign_out()
    state.pending_pathway = None
    await state.session.wait_ready()
    return f"Signed out. Backend: {state.session.backend_name}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show identity, backend and model.")
registry.register("list", cmd_list, help_text="List tasks with their subtasks.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <description>.")
registry.register("done", cmd_done, help_text="Toggle a task: /done <task>.")
registry.register("points", cmd_points, help_text="Set story points: /points <task> <n>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task>.")
registry.register("clear-done", cmd_clear_done, help_text="Delete all completed tasks.")
registry.register("sub", cmd_sub, help_text="Add a subtask: /sub <task> <description>.")
registry.register("subdone", cmd_subdone, help_text="Toggle a subtask: /subdone <task> <subtask>.")
registry.register("subrm", cmd_subrm, help_text="Delete a subtask: /subrm <task> <subtask>.")
registry.register("estimate", cmd_estimate, help_text="AI effort estimate: /estimate <task>.")
registry.register("suggest", cmd_suggest, help_text="AI suggestion on organizing your tasks.")
registry.register("pathway", cmd_pathway, help_text="AI learning pathway: /pathway <goal>.")
registry.register("accept", cmd_accept, help_text="Add the last generated pathway as tasks.")
registry.register("login", cmd_login, help_text="Sign in: /login <user-id>.")
registry.register("logout", cmd_logout, help_text="Sign out.")
