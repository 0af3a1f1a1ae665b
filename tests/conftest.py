"""Shared test fixtures."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from helpers import FAST_POLL_SECONDS, CapturedOutput

from agent_runner.config import MailboxSettings, Settings, WorkspaceSettings
from agent_runner.runner.contracts import TaskDescriptor
from agent_runner.runner.mailbox import Mailbox


@pytest.fixture(autouse=True)
def _restore_runner_logger():
    """CLI runs reconfigure the package logger; undo it after each test."""

    logger = logging.getLogger("agent_runner")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        workspace=WorkspaceSettings(
            root=tmp_path / "workspace",
            input_copy_path=tmp_path / "input.json",
        ),
        mailbox=MailboxSettings(poll_interval_seconds=FAST_POLL_SECONDS),
    )


@pytest.fixture()
def mailbox(settings: Settings) -> Mailbox:
    return Mailbox(
        settings.workspace.inbox_dir,
        poll_interval_seconds=settings.mailbox.poll_interval_seconds,
    )


@pytest.fixture()
def captured(settings: Settings) -> CapturedOutput:
    return CapturedOutput(settings.output)


@pytest.fixture()
def task() -> TaskDescriptor:
    return TaskDescriptor(prompt="hello", group_id="g1")
