"""Engine selection from startup settings."""

from __future__ import annotations

from agent_runner.config import Settings
from agent_runner.engine.base import AgentEngine
from agent_runner.engine.echo_engine import EchoEngine
from agent_runner.engine.opencode import OpencodeEngine
from agent_runner.engine.server import OpencodeServer
from agent_runner.runner.contracts import TaskDescriptor


def build_engine(settings: Settings, task: TaskDescriptor) -> AgentEngine:
    if settings.engine.kind == "echo":
        return EchoEngine()
    if settings.engine.kind == "opencode":
        server = OpencodeServer(
            settings=settings.engine,
            task=task,
            workdir=settings.workspace.group_dir,
        )
        return OpencodeEngine(
            server=server,
            request_timeout_seconds=settings.engine.request_timeout_seconds,
        )
    raise ValueError(f"Unsupported engine kind: {settings.engine.kind!r}")
