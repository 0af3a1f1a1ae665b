"""Filesystem-backed inbox for follow-up messages and the close sentinel.

Producer contract: the host writes ``<inbox>/<name>.json`` files containing
``{"type": "message", "text": "..."}`` with names whose lexical order equals
arrival order, and creates the bare ``<inbox>/_close`` file to end the session.
This process is the only consumer and deletes every file it reads.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from agent_runner.runner.errors import MailboxEntryCorrupt

logger = logging.getLogger(__name__)

CLOSE_SENTINEL = "_close"
MESSAGE_SUFFIX = ".json"

_last_stamp = 0


class CancellationToken:
    """Cooperative stop flag shared between a foreground call and a poller."""

    def __init__(self) -> None:
        self._cancelled = asyncio.Event()

    @property
    def active(self) -> bool:
        return not self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``; wakes early once cancelled."""

        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except TimeoutError:
            return


class EventSource(Protocol):
    """Source of follow-up messages and the close signal."""

    def should_close(self) -> bool:
        """Consume the close signal if it is pending."""

    def drain(self) -> list[str]:
        """Return all pending message texts in delivery order."""

    async def await_next(self, cancel: CancellationToken | None = None) -> str | None:
        """Wait for the next batch of messages, or ``None`` on close."""


class Mailbox:
    """Directory-scanning ``EventSource`` implementation."""

    def __init__(self, inbox_dir: Path, *, poll_interval_seconds: float = 0.5) -> None:
        self.inbox_dir = inbox_dir
        self.poll_interval_seconds = poll_interval_seconds

    @property
    def sentinel_path(self) -> Path:
        return self.inbox_dir / CLOSE_SENTINEL

    def ensure_dir(self) -> None:
        self.inbox_dir.mkdir(parents=True, exist_ok=True)

    def clear_stale_close(self) -> None:
        """Remove a sentinel left behind by a previous run."""

        self.ensure_dir()
        self.sentinel_path.unlink(missing_ok=True)

    def should_close(self) -> bool:
        if not self.sentinel_path.exists():
            return False
        try:
            self.sentinel_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as error:
            logger.warning("Could not remove close sentinel: %s", error)
        return True

    def drain(self) -> list[str]:
        try:
            self.ensure_dir()
            paths = sorted(
                path
                for path in self.inbox_dir.iterdir()
                if path.name.endswith(MESSAGE_SUFFIX) and path.is_file()
            )
        except OSError as error:
            logger.warning("Inbox scan failed: %s", error)
            return []

        messages: list[str] = []
        for path in paths:
            try:
                messages.append(_consume_entry(path))
            except MailboxEntryCorrupt as error:
                logger.warning("Discarding input file %s: %s", path.name, error)
                with contextlib.suppress(OSError):
                    path.unlink(missing_ok=True)
        return messages

    async def await_next(self, cancel: CancellationToken | None = None) -> str | None:
        while cancel is None or cancel.active:
            if self.should_close():
                return None
            messages = self.drain()
            if messages:
                return "\n".join(messages)
            if cancel is None:
                await asyncio.sleep(self.poll_interval_seconds)
            else:
                await cancel.sleep(self.poll_interval_seconds)
        return None


def _next_stamp() -> int:
    """Strictly increasing nanosecond stamp for message file names."""

    global _last_stamp  # noqa: PLW0603
    _last_stamp = max(time.time_ns(), _last_stamp + 1)
    return _last_stamp


def post_message(inbox_dir: Path, text: str) -> Path:
    """Host-side producer: atomically publish one message file."""

    inbox_dir.mkdir(parents=True, exist_ok=True)
    name = f"{_next_stamp():020d}-{uuid4().hex[:8]}{MESSAGE_SUFFIX}"
    target = inbox_dir / name
    staging = inbox_dir / f".{name}.tmp"
    staging.write_text(json.dumps({"type": "message", "text": text}, ensure_ascii=False), "utf-8")
    os.replace(staging, target)
    return target


def request_close(inbox_dir: Path) -> Path:
    """Host-side producer: create the close sentinel."""

    inbox_dir.mkdir(parents=True, exist_ok=True)
    sentinel = inbox_dir / CLOSE_SENTINEL
    sentinel.touch()
    return sentinel


def _consume_entry(path: Path) -> str:
    """Read, delete and validate one inbox file."""

    try:
        raw = path.read_text("utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise MailboxEntryCorrupt(str(error)) from error
    try:
        path.unlink(missing_ok=True)
    except OSError as error:
        raise MailboxEntryCorrupt(f"could not remove entry: {error}") from error

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise MailboxEntryCorrupt(f"invalid JSON: {error}") from error
    if not isinstance(payload, dict) or payload.get("type") != "message":
        raise MailboxEntryCorrupt("not a message entry")
    text = payload.get("text")
    if not isinstance(text, str) or not text:
        raise MailboxEntryCorrupt("message text missing")
    return text
