"""Test helpers shared across modules."""

from __future__ import annotations

import asyncio
import io
from collections.abc import Callable

from agent_runner.config import OutputSettings
from agent_runner.runner.contracts import ResultEnvelope
from agent_runner.runner.output import OutputEmitter, parse_framed_output

FAST_POLL_SECONDS = 0.01


class CapturedOutput:
    """Emitter writing into memory, with helpers to read envelopes back."""

    def __init__(self, settings: OutputSettings) -> None:
        self.settings = settings
        self.buffer = io.StringIO()
        self.emitter = OutputEmitter(settings, stream=self.buffer)

    @property
    def envelopes(self) -> list[ResultEnvelope]:
        return parse_framed_output(self.buffer.getvalue(), settings=self.settings)


async def wait_until(predicate: Callable[[], object], *, timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate`` is truthy."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(FAST_POLL_SECONDS)

    await asyncio.wait_for(_poll(), timeout=timeout)
