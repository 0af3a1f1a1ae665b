"""Controllers for runner CLI commands."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from agent_runner.config import Settings
from agent_runner.engine.base import AgentEngine
from agent_runner.engine.factory import build_engine
from agent_runner.runner.contracts import ResultEnvelope, TaskDescriptor
from agent_runner.runner.errors import MalformedInput
from agent_runner.runner.input_loader import load_task_input
from agent_runner.runner.mailbox import Mailbox, post_message, request_close
from agent_runner.runner.output import OutputEmitter
from agent_runner.runner.prompts import build_system_context
from agent_runner.runner.session import SessionOrchestrator
from agent_runner.runner.transcript import TranscriptArchiver

logger = logging.getLogger(__name__)

EngineFactory = Callable[[Settings, TaskDescriptor], AgentEngine]


@dataclass(slots=True)
class RunCommand:
    """CLI input for one sandbox session."""

    settings: Settings
    stdin: TextIO
    stdout: TextIO | None = None


@dataclass(slots=True)
class SendCommand:
    """CLI input for publishing a follow-up message."""

    inbox_dir: Path
    text: str


@dataclass(slots=True)
class CloseCommand:
    """CLI input for requesting session close."""

    inbox_dir: Path


class RunnerCliController:
    """Runs the sandbox session and the host-side inbox helpers."""

    def __init__(self, engine_factory: EngineFactory = build_engine) -> None:
        self.engine_factory = engine_factory

    def run(self, command: RunCommand) -> int:
        """Run one session; returns the process exit code."""

        settings = command.settings
        emitter = OutputEmitter(settings.output, stream=command.stdout)
        try:
            task = load_task_input(
                command.stdin,
                input_copy_path=settings.workspace.input_copy_path,
            )
        except MalformedInput as error:
            logger.error("Failed to parse input: %s", error)
            emitter.emit(ResultEnvelope.failure(f"Failed to parse input: {error}"))
            return 1

        mailbox = Mailbox(
            settings.workspace.inbox_dir,
            poll_interval_seconds=settings.mailbox.poll_interval_seconds,
        )
        mailbox.clear_stale_close()
        orchestrator = SessionOrchestrator(
            task=task,
            engine=self.engine_factory(settings, task),
            events=mailbox,
            emitter=emitter,
            archiver=TranscriptArchiver(settings.workspace.conversations_dir),
            system_context=build_system_context(settings.workspace.global_dir),
            poll_interval_seconds=settings.mailbox.poll_interval_seconds,
        )
        asyncio.run(_run_until_signalled(orchestrator))
        return 0

    def send(self, command: SendCommand) -> list[str]:
        path = post_message(command.inbox_dir, command.text)
        return [f"queued: {path.name}"]

    def close(self, command: CloseCommand) -> list[str]:
        path = request_close(command.inbox_dir)
        return [f"close requested: {path}"]


async def _run_until_signalled(orchestrator: SessionOrchestrator) -> None:
    """Run the session; SIGTERM/SIGINT cancel it and teardown still runs."""

    loop = asyncio.get_running_loop()
    current = asyncio.current_task()
    installed: list[signal.Signals] = []
    if current is not None:
        for signum in (signal.SIGTERM, signal.SIGINT):
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.add_signal_handler(signum, current.cancel)
                installed.append(signum)
    try:
        await orchestrator.run()
    except asyncio.CancelledError:
        logger.info("Session cancelled by signal")
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)
