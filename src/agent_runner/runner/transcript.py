"""Markdown archive of the conversation, written once at session teardown."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path

from agent_runner.runner.contracts import ConversationTurn
from agent_runner.runner.errors import ArchiveFailure

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 2_000
MAX_LABEL_CHARS = 50

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def sanitize_filename(summary: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to ``-``, trim and cap."""

    slug = _NON_ALNUM.sub("-", summary.lower()).strip("-")
    return slug[:MAX_LABEL_CHARS]


def fallback_label(now: datetime) -> str:
    return f"conversation-{now:%H%M}"


def format_archived_at(now: datetime) -> str:
    """Render e.g. ``Mar 5, 2:07 PM``."""

    hour = now.hour % 12 or 12
    return f"{now:%b} {now.day}, {hour}:{now:%M} {now:%p}"


def render_transcript(
    turns: Sequence[ConversationTurn],
    *,
    now: datetime,
    title: str | None = None,
    assistant_name: str | None = None,
) -> str:
    lines = [
        f"# {title or 'Conversation'}",
        "",
        f"Archived: {format_archived_at(now)}",
        "",
        "---",
        "",
    ]
    for turn in turns:
        sender = "User" if turn.role == "user" else (assistant_name or "Assistant")
        content = turn.content
        if len(content) > MAX_CONTENT_CHARS:
            content = content[:MAX_CONTENT_CHARS] + "..."
        lines.append(f"**{sender}**: {content}")
        lines.append("")
    return "\n".join(lines)


class TranscriptArchiver:
    """Persists a finished conversation under the group's archive directory."""

    def __init__(
        self,
        conversations_dir: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.conversations_dir = conversations_dir
        self._clock = clock

    def archive(
        self,
        turns: Sequence[ConversationTurn],
        *,
        assistant_name: str | None = None,
        summary: str | None = None,
    ) -> Path | None:
        """Write the transcript; returns its path, or ``None`` if nothing was written.

        Never raises: archive failures are logged and ignored.
        """

        if not turns:
            return None

        now = self._clock()
        label = sanitize_filename(summary) if summary else ""
        if not label:
            label = fallback_label(now)
        utc_date = now.astimezone(UTC).date()
        path = self.conversations_dir / f"{utc_date.isoformat()}-{label}.md"
        try:
            self.conversations_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(
                render_transcript(
                    turns,
                    now=now,
                    title=summary,
                    assistant_name=assistant_name,
                ),
                "utf-8",
            )
        except Exception as error:  # noqa: BLE001
            logger.error("Failed to archive conversation: %s", ArchiveFailure(str(error)))
            return None
        logger.info("Archived conversation to %s", path)
        return path
