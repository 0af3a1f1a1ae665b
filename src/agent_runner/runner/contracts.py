"""Typed contracts exchanged with the host and kept for the session lifetime."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from agent_runner.runner.errors import MalformedInput

ResultStatus = Literal["success", "error"]
Role = Literal["user", "assistant"]


@dataclass(slots=True, frozen=True)
class TaskDescriptor:
    """Initial task handed to the sandbox on stdin."""

    prompt: str
    group_id: str
    session_id: str | None = None
    is_scheduled: bool = False
    is_main: bool = False
    chat_id: str | None = None
    assistant_name: str | None = None
    secrets: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ResultEnvelope:
    """One framed result emitted to the host."""

    status: ResultStatus
    text: str | None = None
    session_id: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, text: str | None, session_id: str | None) -> ResultEnvelope:
        return cls(status="success", text=text, session_id=session_id)

    @classmethod
    def failure(cls, error: str, session_id: str | None = None) -> ResultEnvelope:
        return cls(status="error", text=None, session_id=session_id, error=error)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with host-facing key names, omitting absent optionals."""

        payload: dict[str, Any] = {"status": self.status, "text": self.text}
        if self.session_id is not None:
            payload["sessionId"] = self.session_id
        if self.error is not None:
            payload["error"] = self.error
        return payload

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> ResultEnvelope:
        status = payload.get("status")
        if status not in ("success", "error"):
            raise ValueError(f"Unknown result status: {status!r}")
        text = payload.get("text")
        if text is not None and not isinstance(text, str):
            raise TypeError("result.text must be a string or null")
        return cls(
            status=status,
            text=text,
            session_id=payload.get("sessionId"),
            error=payload.get("error"),
        )


@dataclass(slots=True, frozen=True)
class ConversationTurn:
    """One archived exchange entry."""

    role: Role
    content: str


def read_task_descriptor(raw: str) -> TaskDescriptor:
    """Deserialize and validate the task descriptor JSON document."""

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise MalformedInput(f"invalid JSON: {error}") from error
    if not isinstance(payload, dict):
        raise MalformedInput("task descriptor must be a JSON object")

    prompt = payload.get("prompt")
    if not isinstance(prompt, str):
        raise MalformedInput("prompt must be a string")
    group_id = payload.get("groupId", payload.get("groupFolder"))
    if not isinstance(group_id, str) or not group_id.strip():
        raise MalformedInput("groupId must be a non-empty string")

    secrets = payload.get("secrets") or {}
    if not isinstance(secrets, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in secrets.items()
    ):
        raise MalformedInput("secrets must be an object of strings")

    return TaskDescriptor(
        prompt=prompt,
        group_id=group_id,
        session_id=_optional_str(payload, "sessionId"),
        is_scheduled=_optional_bool(payload, "isScheduled", "isScheduledTask"),
        is_main=_optional_bool(payload, "isMain"),
        chat_id=_optional_str(payload, "chatJid"),
        assistant_name=_optional_str(payload, "assistantName"),
        secrets=dict(secrets),
    )


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedInput(f"{key} must be a string")
    return value or None


def _optional_bool(payload: dict[str, Any], *keys: str) -> bool:
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, bool):
            raise MalformedInput(f"{key} must be a boolean")
        return value
    return False
