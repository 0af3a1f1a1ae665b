"""CLI entrypoint for agent-runner."""

import logging
import sys
from pathlib import Path

import rich_click as click

from agent_runner import __version__
from agent_runner.config import Settings
from agent_runner.runner.controllers import (
    CloseCommand,
    RunCommand,
    RunnerCliController,
    SendCommand,
)

click.rich_click.USE_MARKDOWN = True
RUNNER_CONTROLLER = RunnerCliController()


class _ComponentTagFormatter(logging.Formatter):
    """Prefix every line with a short component tag, e.g. ``[agent-runner.mailbox]``."""

    def format(self, record: logging.LogRecord) -> str:
        tag = record.name.replace("_", "-")
        for noise in (".runner.", ".engine."):
            tag = tag.replace(noise, ".")
        message = super().format(record)
        return "\n".join(f"[{tag}] {line}" for line in message.splitlines() or [""])


def configure_logging(level: str) -> None:
    """Send all diagnostics to stderr; stdout is reserved for framed results."""

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_ComponentTagFormatter("%(message)s"))
    root = logging.getLogger("agent_runner")
    root.handlers[:] = [handler]
    root.setLevel(level)
    root.propagate = False


@click.group()
@click.version_option(version=__version__, prog_name="agent-runner")
def agent_runner() -> None:
    """Sandbox session runner."""


@agent_runner.command("run")
@click.option(
    "--workspace",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Shared workspace root. Defaults to AGENT_RUNNER_WORKSPACE or /workspace.",
)
def run(workspace: Path | None) -> None:
    """Run one session: task JSON on stdin, framed results on stdout."""

    try:
        settings = Settings.from_env(workspace_root=workspace)
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    configure_logging(settings.log_level)
    exit_code = RUNNER_CONTROLLER.run(
        RunCommand(settings=settings, stdin=click.get_text_stream("stdin")),
    )
    if exit_code:
        sys.exit(exit_code)


@agent_runner.command("send")
@click.argument("text")
@click.option(
    "--inbox",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Inbox directory. Defaults to <workspace>/ipc/input.",
)
def send(text: str, inbox: Path | None) -> None:
    """Queue a follow-up message for a running session."""

    _emit_lines(
        RUNNER_CONTROLLER.send(SendCommand(inbox_dir=inbox or _default_inbox(), text=text)),
    )


@agent_runner.command("close")
@click.option(
    "--inbox",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Inbox directory. Defaults to <workspace>/ipc/input.",
)
def close(inbox: Path | None) -> None:
    """Ask a running session to finish."""

    _emit_lines(RUNNER_CONTROLLER.close(CloseCommand(inbox_dir=inbox or _default_inbox())))


def _default_inbox() -> Path:
    return Settings.from_env().workspace.inbox_dir


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_runner()
