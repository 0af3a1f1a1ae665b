"""Framed result output on stdout."""

from __future__ import annotations

import json
import sys
from typing import TextIO

from agent_runner.config import OutputSettings
from agent_runner.runner.contracts import ResultEnvelope


class OutputEmitter:
    """Writes each envelope as ``start marker / JSON line / end marker``.

    Must be the only writer of framed blocks on the stream. Diagnostics belong
    on stderr so they never land between markers.
    """

    def __init__(self, settings: OutputSettings, stream: TextIO | None = None) -> None:
        self.settings = settings
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def emit(self, envelope: ResultEnvelope) -> None:
        line = json.dumps(envelope.to_wire(), ensure_ascii=False, separators=(",", ":"))
        self.stream.write(f"{self.settings.start_marker}\n{line}\n{self.settings.end_marker}\n")
        self.stream.flush()


def parse_framed_output(
    text: str,
    *,
    settings: OutputSettings | None = None,
) -> list[ResultEnvelope]:
    """Extract every framed envelope from a mixed stdout capture.

    Lines outside marker pairs are ignored; an unterminated trailing block is
    dropped.
    """

    markers = settings or OutputSettings()
    envelopes: list[ResultEnvelope] = []
    body: list[str] | None = None
    for line in text.splitlines():
        stripped = line.strip()
        if stripped == markers.start_marker:
            body = []
            continue
        if stripped == markers.end_marker:
            if body:
                envelopes.append(ResultEnvelope.from_wire(json.loads("\n".join(body))))
            body = None
            continue
        if body is not None:
            body.append(line)
    return envelopes
