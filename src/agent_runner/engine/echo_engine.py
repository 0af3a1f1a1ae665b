"""Local deterministic engine for smoke runs and tests."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import uuid4

from agent_runner.engine.base import EngineReply
from agent_runner.runner.errors import EngineCallFailure

ScriptedReply = str | EngineReply | BaseException | None


@dataclass(slots=True)
class PromptCall:
    """One recorded ``prompt`` invocation."""

    session_id: str
    text: str
    no_reply: bool


@dataclass(slots=True)
class EchoEngine:
    """In-process engine that echoes prompts or replays a script.

    Scripted replies are consumed by answering prompts in order: a string
    becomes a single text part, a dict is returned as-is, ``None`` yields an
    empty reply and an exception is raised. Once the script runs out the
    prompt text is echoed back. With ``hold_until_aborted`` an answering
    prompt blocks until ``abort`` is called for its session.
    """

    script: deque[ScriptedReply] = field(default_factory=deque)
    known_sessions: set[str] = field(default_factory=set)
    hold_until_aborted: bool = False
    fail_create: bool = False
    created: list[str] = field(default_factory=list)
    prompts: list[PromptCall] = field(default_factory=list)
    aborted: list[str] = field(default_factory=list)
    closed: bool = False
    _abort_events: dict[str, asyncio.Event] = field(default_factory=dict)

    @classmethod
    def scripted(cls, replies: Iterable[ScriptedReply], **kwargs: object) -> EchoEngine:
        return cls(script=deque(replies), **kwargs)  # type: ignore[arg-type]

    async def create(self, *, title: str) -> str:
        if self.fail_create:
            raise EngineCallFailure(f"session create rejected: {title}")
        session_id = f"ses_{uuid4().hex[:12]}"
        self.known_sessions.add(session_id)
        self.created.append(session_id)
        return session_id

    async def get(self, session_id: str) -> str:
        if session_id not in self.known_sessions:
            raise EngineCallFailure(f"session not found: {session_id}")
        return session_id

    async def prompt(self, session_id: str, text: str, *, no_reply: bool = False) -> EngineReply:
        self.prompts.append(PromptCall(session_id=session_id, text=text, no_reply=no_reply))
        if no_reply:
            return {}
        if self.hold_until_aborted:
            event = self._abort_events.setdefault(session_id, asyncio.Event())
            await event.wait()
            event.clear()
            raise EngineCallFailure("prompt aborted")

        item: ScriptedReply = self.script.popleft() if self.script else text
        if isinstance(item, BaseException):
            raise item
        if item is None:
            return {}
        if isinstance(item, str):
            return {"parts": [{"type": "text", "text": item}]}
        return item

    async def abort(self, session_id: str) -> None:
        self.aborted.append(session_id)
        self._abort_events.setdefault(session_id, asyncio.Event()).set()

    async def close(self) -> None:
        self.closed = True

    @property
    def answered_prompts(self) -> list[str]:
        return [call.text for call in self.prompts if not call.no_reply]

    @property
    def forwarded_prompts(self) -> list[str]:
        return [call.text for call in self.prompts if call.no_reply]
