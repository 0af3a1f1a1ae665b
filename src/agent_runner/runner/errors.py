"""Failure taxonomy for the session runner."""

from __future__ import annotations


class AgentRunnerError(RuntimeError):
    """Base class for runner failures."""


class MalformedInput(AgentRunnerError):
    """Task descriptor on stdin could not be parsed; no session exists yet."""


class SessionResumeFailure(AgentRunnerError):
    """Requested session could not be fetched; a fresh one is created instead."""


class EngineCallFailure(AgentRunnerError):
    """Engine rejected a call or the transport to it failed."""


class MailboxEntryCorrupt(AgentRunnerError):
    """Inbox file was unreadable or not a message; it is discarded."""


class ArchiveFailure(AgentRunnerError):
    """Transcript could not be written; logged and otherwise ignored."""
