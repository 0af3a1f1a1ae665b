"""Agent engine capability consumed by the session orchestrator."""

from __future__ import annotations

import json
from typing import Any, Protocol

EngineReply = dict[str, Any]


class AgentEngine(Protocol):
    """Protocol implemented by engine adapters.

    Session ids are opaque: the runner only threads them back into calls.
    """

    async def create(self, *, title: str) -> str:
        """Create a conversation and return its id."""

    async def get(self, session_id: str) -> str:
        """Fetch an existing conversation; raises if it cannot be resumed."""

    async def prompt(self, session_id: str, text: str, *, no_reply: bool = False) -> EngineReply:
        """Submit text; with ``no_reply`` the engine records it without answering."""

    async def abort(self, session_id: str) -> None:
        """Abort the in-flight prompt of a conversation."""

    async def close(self) -> None:
        """Release engine resources held for this run."""


def extract_reply_text(reply: EngineReply | None) -> str | None:
    """Recover plain text from a structured engine reply.

    Text parts are concatenated in order; otherwise a structured output field
    is serialized; otherwise ``None`` (valid, no new content).
    """

    if not reply:
        return None
    parts = reply.get("parts")
    if isinstance(parts, list):
        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict)
            and part.get("type") == "text"
            and isinstance(part.get("text"), str)
            and part["text"]
        ]
        if texts:
            return "".join(texts)

    info = reply.get("info")
    if isinstance(info, dict) and info.get("structured_output"):
        return json.dumps(info["structured_output"], ensure_ascii=False)
    return None
