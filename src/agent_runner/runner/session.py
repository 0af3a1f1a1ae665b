"""Conversation lifecycle: session setup, turn loop, in-flight polling, teardown."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from agent_runner.engine.base import AgentEngine, extract_reply_text
from agent_runner.runner.contracts import ConversationTurn, ResultEnvelope, TaskDescriptor
from agent_runner.runner.errors import SessionResumeFailure
from agent_runner.runner.mailbox import CancellationToken, EventSource
from agent_runner.runner.output import OutputEmitter
from agent_runner.runner.prompts import build_initial_prompt
from agent_runner.runner.sanitization import sanitize_preview
from agent_runner.runner.transcript import TranscriptArchiver

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Orchestrator lifecycle states."""

    INIT = "init"
    RESUMING = "resuming"
    CREATING = "creating"
    CONTEXT_INJECTION = "context_injection"
    TURN_LOOP = "turn_loop"
    DRAINING = "draining"
    CLOSED = "closed"


@dataclass(slots=True)
class TurnOutcome:
    """How a single turn ended."""

    closed_during_turn: bool = False
    leftover: list[str] = field(default_factory=list)


class InflightPoller:
    """Watches the event source while a prompt is in flight.

    On the close signal it aborts the turn once and stops. Otherwise pending
    messages are forwarded, one at a time in delivery order, as no-reply
    prompts into the same session. Messages drained after the token was
    cancelled are kept in ``leftover`` so the turn loop can submit them next.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        engine: AgentEngine,
        events: EventSource,
        session_id: str,
        token: CancellationToken,
        interval_seconds: float,
        on_forward: Callable[[str], None] | None = None,
    ) -> None:
        self.engine = engine
        self.events = events
        self.session_id = session_id
        self.token = token
        self.interval_seconds = interval_seconds
        self.on_forward = on_forward
        self.closed = False
        self.leftover: list[str] = []

    async def run(self) -> None:
        while self.token.active:
            await self.token.sleep(self.interval_seconds)
            if not self.token.active:
                return
            await self.tick()

    async def tick(self) -> None:
        if self.events.should_close():
            logger.info("Close sentinel detected during query, aborting")
            self.closed = True
            self.token.cancel()
            try:
                await self.engine.abort(self.session_id)
            except Exception as error:  # noqa: BLE001
                logger.warning("Abort request failed: %s", error)
            return

        for text in self.events.drain():
            if not self.token.active:
                self.leftover.append(text)
                continue
            logger.info("Piping IPC message into active session (%d chars)", len(text))
            if self.on_forward is not None:
                self.on_forward(text)
            try:
                await self.engine.prompt(self.session_id, text, no_reply=True)
            except Exception as error:  # noqa: BLE001
                logger.warning("Failed to pipe IPC message: %s", error)


class SessionOrchestrator:
    """Owns one conversation from session setup to archive."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        task: TaskDescriptor,
        engine: AgentEngine,
        events: EventSource,
        emitter: OutputEmitter,
        archiver: TranscriptArchiver,
        system_context: str | None = None,
        poll_interval_seconds: float = 0.5,
    ) -> None:
        self.task = task
        self.engine = engine
        self.events = events
        self.emitter = emitter
        self.archiver = archiver
        self.system_context = system_context
        self.poll_interval_seconds = poll_interval_seconds
        self.state = SessionState.INIT
        self.session_id: str | None = None
        self.turns: list[ConversationTurn] = []

    async def run(self) -> None:
        """Run the whole session; teardown always happens."""

        try:
            await self._open_session()
            await self._inject_context()
            await self._turn_loop()
        except Exception as error:  # noqa: BLE001
            logger.error("Agent error: %s", error)
            self.emitter.emit(ResultEnvelope.failure(_describe(error), self.session_id))
        finally:
            await self._teardown()

    async def _open_session(self) -> None:
        if self.task.session_id:
            self.state = SessionState.RESUMING
            try:
                self.session_id = await self.engine.get(self.task.session_id)
            except Exception as error:  # noqa: BLE001
                failure = SessionResumeFailure(
                    f"Could not resume session {self.task.session_id}: {error}",
                )
                logger.info("%s; creating new one", failure)
            else:
                logger.info("Resumed existing session: %s", self.session_id)
                return

        self.state = SessionState.CREATING
        self.session_id = await self.engine.create(title=f"agent-runner-{self.task.group_id}")
        logger.info("Created new session: %s", self.session_id)

    async def _inject_context(self) -> None:
        if not self.system_context:
            return
        self.state = SessionState.CONTEXT_INJECTION
        logger.info("Injecting system context into session...")
        try:
            await self.engine.prompt(self._require_session(), self.system_context, no_reply=True)
        except Exception as error:  # noqa: BLE001
            logger.warning("System context injection failed: %s", error)

    async def _turn_loop(self) -> None:
        self.state = SessionState.TURN_LOOP
        pending = self.events.drain()
        if pending:
            logger.info("Draining %d pending IPC messages into initial prompt", len(pending))
        prompt = build_initial_prompt(self.task, pending)

        while True:
            logger.info("Starting query (session: %s)...", self.session_id)
            self.turns.append(ConversationTurn(role="user", content=prompt))
            outcome = await self.execute_turn(prompt)
            if outcome.closed_during_turn:
                logger.info("Close sentinel consumed during query, exiting")
                return

            self.emitter.emit(ResultEnvelope.success(None, self.session_id))

            if outcome.leftover:
                if self.events.should_close():
                    logger.info(
                        "Close sentinel received, dropping %d late messages",
                        len(outcome.leftover),
                    )
                    return
                prompt = "\n".join(outcome.leftover)
                continue

            logger.info("Query ended, waiting for next IPC message...")
            next_message = await self.events.await_next()
            if next_message is None:
                logger.info("Close sentinel received, exiting")
                return
            logger.info("Got new message (%d chars), starting new query", len(next_message))
            prompt = next_message

    async def execute_turn(self, prompt: str) -> TurnOutcome:
        """Submit one prompt while polling for follow-ups and the close signal."""

        session_id = self._require_session()
        token = CancellationToken()
        poller = InflightPoller(
            engine=self.engine,
            events=self.events,
            session_id=session_id,
            token=token,
            interval_seconds=self.poll_interval_seconds,
            on_forward=self._record_forwarded,
        )
        poll_task = asyncio.create_task(poller.run())
        try:
            logger.info("Sending prompt to session %s (%d chars)", session_id, len(prompt))
            reply = await self.engine.prompt(session_id, prompt)
        except Exception as error:  # noqa: BLE001
            message = _describe(error)
            logger.error("Query error: %s", message)
            self.emitter.emit(ResultEnvelope.failure(message, session_id))
        else:
            text = extract_reply_text(reply)
            logger.info("Got response: %s", sanitize_preview(text))
            if text is not None:
                self.turns.append(ConversationTurn(role="assistant", content=text))
            self.emitter.emit(ResultEnvelope.success(text, session_id))
        finally:
            token.cancel()
            await poll_task

        return TurnOutcome(
            closed_during_turn=poller.closed,
            leftover=poller.leftover,
        )

    def _record_forwarded(self, text: str) -> None:
        self.turns.append(ConversationTurn(role="user", content=text))

    async def _teardown(self) -> None:
        self.state = SessionState.DRAINING
        self.archiver.archive(list(self.turns), assistant_name=self.task.assistant_name)
        try:
            await self.engine.close()
        except Exception as error:  # noqa: BLE001
            logger.warning("Engine shutdown failed: %s", error)
        self.state = SessionState.CLOSED

    def _require_session(self) -> str:
        if self.session_id is None:
            raise RuntimeError("no active session")
        return self.session_id


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__
