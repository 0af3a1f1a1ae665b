from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

import agent_runner.main as main_module
from agent_runner.engine.echo_engine import EchoEngine
from agent_runner.main import agent_runner
from agent_runner.runner.controllers import RunnerCliController
from agent_runner.runner.mailbox import request_close
from agent_runner.runner.output import parse_framed_output

pytestmark = [
    allure.epic("Runtime"),
    allure.feature("Runner CLI"),
]


class _ClosesAfterFirstAnswer(EchoEngine):
    """Echoes the first prompt, then asks the session to close."""

    inbox_dir: Path | None = None

    async def prompt(self, session_id, text, *, no_reply=False):
        reply = await EchoEngine.prompt(self, session_id, text, no_reply=no_reply)
        if not no_reply and self.inbox_dir is not None:
            request_close(self.inbox_dir)
        return reply


def _workspace_env(monkeypatch, tmp_path: Path) -> Path:
    workspace = tmp_path / "workspace"
    monkeypatch.setenv("AGENT_RUNNER_WORKSPACE", str(workspace))
    monkeypatch.setenv("AGENT_RUNNER_INPUT_COPY_PATH", str(tmp_path / "input.json"))
    monkeypatch.setenv("AGENT_RUNNER_POLL_INTERVAL_MS", "10")
    monkeypatch.setenv("AGENT_RUNNER_ENGINE", "echo")
    return workspace


def test_run_answers_prompt_archives_and_purges_input(monkeypatch, tmp_path: Path) -> None:
    workspace = _workspace_env(monkeypatch, tmp_path)
    (tmp_path / "input.json").write_text("{}", "utf-8")
    inbox = workspace / "ipc" / "input"
    inbox.mkdir(parents=True)
    (inbox / "_close").touch()
    engines: list[_ClosesAfterFirstAnswer] = []

    def _factory(settings, task):
        engine = _ClosesAfterFirstAnswer()
        engine.inbox_dir = settings.workspace.inbox_dir
        engines.append(engine)
        return engine

    monkeypatch.setattr(
        main_module,
        "RUNNER_CONTROLLER",
        RunnerCliController(engine_factory=_factory),
    )

    result = CliRunner().invoke(
        agent_runner,
        ["run"],
        input=json.dumps({"prompt": "ping", "groupFolder": "family", "isMain": True}),
    )

    assert result.exit_code == 0, result.output
    envelopes = parse_framed_output(result.output)
    session_id = engines[0].created[0]
    assert [envelope.status for envelope in envelopes] == ["success", "success"]
    assert envelopes[0].text == "ping"
    assert envelopes[1].text is None
    assert {envelope.session_id for envelope in envelopes} == {session_id}
    assert engines[0].closed is True
    assert not (tmp_path / "input.json").exists()
    assert not (inbox / "_close").exists()
    archives = list((workspace / "group" / "conversations").glob("*.md"))
    assert len(archives) == 1
    assert "**User**: ping" in archives[0].read_text("utf-8")


def test_run_rejects_malformed_input(monkeypatch, tmp_path: Path) -> None:
    _workspace_env(monkeypatch, tmp_path)
    (tmp_path / "input.json").write_text("{", "utf-8")

    result = CliRunner().invoke(agent_runner, ["run"], input="{not json")

    assert result.exit_code == 1
    envelopes = parse_framed_output(result.output)
    assert len(envelopes) == 1
    assert envelopes[0].status == "error"
    assert envelopes[0].session_id is None
    assert envelopes[0].error.startswith("Failed to parse input: ")
    assert (tmp_path / "input.json").exists()


def test_run_rejects_invalid_settings(monkeypatch, tmp_path: Path) -> None:
    _workspace_env(monkeypatch, tmp_path)
    monkeypatch.setenv("AGENT_RUNNER_ENGINE", "claude")

    result = CliRunner().invoke(agent_runner, ["run"], input="{}")

    assert result.exit_code != 0
    assert "Unsupported AGENT_RUNNER_ENGINE" in result.output


def test_send_and_close_write_inbox_entries(tmp_path: Path) -> None:
    inbox = tmp_path / "inbox"
    runner = CliRunner()

    sent = runner.invoke(agent_runner, ["send", "remember milk", "--inbox", str(inbox)])
    closed = runner.invoke(agent_runner, ["close", "--inbox", str(inbox)])

    assert sent.exit_code == 0, sent.output
    assert closed.exit_code == 0, closed.output
    messages = sorted(inbox.glob("*.json"))
    assert len(messages) == 1
    assert sent.output.strip() == f"queued: {messages[0].name}"
    assert json.loads(messages[0].read_text("utf-8")) == {
        "type": "message",
        "text": "remember milk",
    }
    assert (inbox / "_close").exists()


def test_run_rejects_undecodable_input(monkeypatch, tmp_path: Path) -> None:
    _workspace_env(monkeypatch, tmp_path)

    result = CliRunner().invoke(
        agent_runner,
        ["run"],
        input=b'{"prompt": "\xff\xfe", "groupId": "g1"}',
    )

    assert result.exit_code == 1
    envelopes = parse_framed_output(result.output)
    assert len(envelopes) == 1
    assert envelopes[0].status == "error"
    assert envelopes[0].session_id is None
    assert envelopes[0].error.startswith("Failed to parse input: could not read stdin")


def test_run_reports_unparseable_setting(monkeypatch, tmp_path: Path) -> None:
    _workspace_env(monkeypatch, tmp_path)
    monkeypatch.setenv("AGENT_RUNNER_POLL_INTERVAL_MS", "fast")

    result = CliRunner().invoke(agent_runner, ["run"], input="{}")

    assert result.exit_code == 1
    assert not isinstance(result.exception, ValueError)
    assert "invalid literal" in result.output
