"""Prompt assembly for the first turn and the one-time system context."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from agent_runner.runner.contracts import TaskDescriptor

logger = logging.getLogger(__name__)

SYSTEM_CONTEXT_FILES = ("AGENTS.md", "CLAUDE.md")

SCHEDULED_TASK_PREFIX = (
    "[SCHEDULED TASK - The following message was sent automatically "
    "and is not coming directly from the user or group.]"
)


def build_system_context(global_dir: Path) -> str | None:
    """Return the first shared context document found, if any."""

    for name in SYSTEM_CONTEXT_FILES:
        path = global_dir / name
        if not path.is_file():
            continue
        try:
            content = path.read_text("utf-8")
        except (OSError, UnicodeDecodeError) as error:
            logger.warning("Skipping unreadable system context %s: %s", path, error)
            continue
        if content.strip():
            logger.info("Loaded system context from %s", path)
            return content
    return None


def build_initial_prompt(task: TaskDescriptor, pending: Sequence[str] = ()) -> str:
    prompt = task.prompt
    if task.is_scheduled:
        prompt = f"{SCHEDULED_TASK_PREFIX}\n\n{prompt}"
    if pending:
        prompt = "\n".join([prompt, *pending])
    return prompt
