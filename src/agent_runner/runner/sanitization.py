"""Redaction helpers for prompt and reply previews written to the log."""

from __future__ import annotations

import re
from collections.abc import Callable

_MAX_PREVIEW_CHARS = 200

_Replacement = str | Callable[[re.Match[str]], str]

_REPLACEMENTS: tuple[tuple[re.Pattern[str], _Replacement], ...] = (
    (
        re.compile(r"(?i)\b(bearer)\s+[a-z0-9._\-]{8,}\b"),
        r"\1 [redacted-token]",
    ),
    (
        re.compile(r"(?i)\b((?:sk|nvapi)-[a-z0-9_\-]{8,})\b"),
        "[redacted-token]",
    ),
    (
        re.compile(
            r"(?i)\b(nvidia|openai|anthropic|opencode|agent_runner)[a-z0-9_]*_?(api_)?(key|token)\b"
            r"\s*[:=]\s*['\"]?[^'\" \n\r\t]+['\"]?",
        ),
        "[redacted-secret]",
    ),
    (
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        "[redacted-email]",
    ),
)


def sanitize_preview(text: str | None, *, max_chars: int = _MAX_PREVIEW_CHARS) -> str:
    """Redact obvious secrets/PII, flatten newlines and clamp length."""

    if not text:
        return "(empty)"
    compact = " ".join(text.split())
    if not compact:
        return "(empty)"

    redacted = compact
    for pattern, replacement in _REPLACEMENTS:
        redacted = pattern.sub(replacement, redacted)

    if len(redacted) <= max_chars:
        return redacted
    return redacted[:max_chars] + "..."
