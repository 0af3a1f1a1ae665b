"""Tests for transcript rendering and archiving."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import allure
import pytest

from agent_runner.runner.contracts import ConversationTurn
from agent_runner.runner.transcript import (
    MAX_CONTENT_CHARS,
    TranscriptArchiver,
    format_archived_at,
    render_transcript,
    sanitize_filename,
)

pytestmark = [
    allure.epic("Session Protocol"),
    allure.feature("Transcript Archive"),
]

_NOW = datetime(2026, 3, 5, 14, 7, tzinfo=UTC)


def _turns() -> list[ConversationTurn]:
    return [
        ConversationTurn(role="user", content="hello"),
        ConversationTurn(role="assistant", content="hi"),
    ]


@pytest.mark.parametrize(
    ("summary", "expected"),
    [
        ("Weekly Planning: Q3!", "weekly-planning-q3"),
        ("  --Hello,,, World--  ", "hello-world"),
        ("x" * 80, "x" * 50),
        ("???", ""),
    ],
)
def test_sanitize_filename(summary: str, expected: str) -> None:
    assert sanitize_filename(summary) == expected


def test_format_archived_at_uses_twelve_hour_clock() -> None:
    assert format_archived_at(_NOW) == "Mar 5, 2:07 PM"
    assert format_archived_at(datetime(2026, 1, 9, 0, 30)) == "Jan 9, 12:30 AM"


def test_render_transcript_layout() -> None:
    rendered = render_transcript(_turns(), now=_NOW, assistant_name="Andy")

    assert rendered.splitlines() == [
        "# Conversation",
        "",
        "Archived: Mar 5, 2:07 PM",
        "",
        "---",
        "",
        "**User**: hello",
        "",
        "**Andy**: hi",
        "",
    ]


def test_render_transcript_truncates_long_content() -> None:
    long_turn = ConversationTurn(role="assistant", content="a" * (MAX_CONTENT_CHARS + 10))

    rendered = render_transcript([long_turn], now=_NOW, title="Long")

    assert rendered.startswith("# Long\n")
    assert f"**Assistant**: {'a' * MAX_CONTENT_CHARS}..." in rendered


class TestArchiver:
    def test_writes_fallback_named_file(self, tmp_path: Path) -> None:
        archiver = TranscriptArchiver(tmp_path / "conversations", clock=lambda: _NOW)

        path = archiver.archive(_turns())

        assert path == tmp_path / "conversations" / "2026-03-05-conversation-1407.md"
        assert "**User**: hello" in path.read_text("utf-8")

    def test_file_date_is_utc(self, tmp_path: Path) -> None:
        late_evening = datetime(2026, 3, 5, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        archiver = TranscriptArchiver(tmp_path, clock=lambda: late_evening)

        path = archiver.archive(_turns())

        assert path is not None
        assert path.name == "2026-03-06-conversation-2330.md"

    def test_uses_summary_for_title_and_label(self, tmp_path: Path) -> None:
        archiver = TranscriptArchiver(tmp_path, clock=lambda: _NOW)

        path = archiver.archive(_turns(), summary="Trip to Lisbon")

        assert path is not None
        assert path.name == "2026-03-05-trip-to-lisbon.md"
        assert path.read_text("utf-8").startswith("# Trip to Lisbon\n")

    def test_empty_record_is_a_noop(self, tmp_path: Path) -> None:
        archiver = TranscriptArchiver(tmp_path / "conversations", clock=lambda: _NOW)

        assert archiver.archive([]) is None
        assert not (tmp_path / "conversations").exists()

    def test_write_failure_is_swallowed(self, tmp_path: Path) -> None:
        blocker = tmp_path / "conversations"
        blocker.write_text("not a directory", "utf-8")
        archiver = TranscriptArchiver(blocker, clock=lambda: _NOW)

        assert archiver.archive(_turns()) is None
