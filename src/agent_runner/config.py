"""Runtime configuration for the sandbox session runner."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

SUPPORTED_ENGINES = ("opencode", "echo")

DEFAULT_OPENCODE_COMMAND = "opencode serve --hostname {hostname} --port {port}"
DEFAULT_MODEL = "nvidia/moonshotai/kimi-k2.5"
DEFAULT_PROVIDER_BASE_URL = "https://integrate.api.nvidia.com/v1"


@dataclass(slots=True)
class WorkspaceSettings:
    """Shared filesystem layout visible to both host and sandbox."""

    root: Path = Path("/workspace")
    input_copy_path: Path = Path("/tmp/input.json")  # noqa: S108

    @property
    def inbox_dir(self) -> Path:
        return self.root / "ipc" / "input"

    @property
    def group_dir(self) -> Path:
        return self.root / "group"

    @property
    def conversations_dir(self) -> Path:
        return self.group_dir / "conversations"

    @property
    def global_dir(self) -> Path:
        return self.root / "global"


@dataclass(slots=True)
class MailboxSettings:
    """Filesystem inbox polling settings."""

    poll_interval_seconds: float = 0.5


@dataclass(slots=True)
class EngineSettings:
    """Agent engine selection and OpenCode server settings."""

    kind: str = "opencode"
    model: str = DEFAULT_MODEL
    provider_base_url: str = DEFAULT_PROVIDER_BASE_URL
    api_key_env: str = "NVIDIA_API_KEY"
    server_command: str = DEFAULT_OPENCODE_COMMAND
    hostname: str = "127.0.0.1"
    port: int = 4096
    startup_timeout_seconds: float = 30.0
    request_timeout_seconds: float | None = None
    mcp_command: str | None = None


@dataclass(slots=True)
class OutputSettings:
    """Framing markers for results written to stdout."""

    start_marker: str = "---AGENT_RUNNER_OUTPUT_START---"
    end_marker: str = "---AGENT_RUNNER_OUTPUT_END---"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern, assembled once at startup."""

    workspace: WorkspaceSettings = field(default_factory=WorkspaceSettings)
    mailbox: MailboxSettings = field(default_factory=MailboxSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, workspace_root: Path | None = None) -> Settings:
        """Load settings from environment with defaults matching the sandbox image."""

        request_timeout = os.getenv("AGENT_RUNNER_REQUEST_TIMEOUT_SECONDS", "").strip()
        mcp_command = os.getenv("AGENT_RUNNER_MCP_COMMAND", "").strip()
        return cls(
            workspace=WorkspaceSettings(
                root=workspace_root or Path(os.getenv("AGENT_RUNNER_WORKSPACE", "/workspace")),
                input_copy_path=Path(
                    os.getenv("AGENT_RUNNER_INPUT_COPY_PATH", "/tmp/input.json"),  # noqa: S108
                ),
            ),
            mailbox=MailboxSettings(
                poll_interval_seconds=int(os.getenv("AGENT_RUNNER_POLL_INTERVAL_MS", "500"))
                / 1000,
            ),
            engine=EngineSettings(
                kind=os.getenv("AGENT_RUNNER_ENGINE", "opencode").strip().lower(),
                model=os.getenv("OPENCODE_MODEL", DEFAULT_MODEL),
                provider_base_url=os.getenv("NVIDIA_API_BASE_URL", DEFAULT_PROVIDER_BASE_URL),
                api_key_env=os.getenv("AGENT_RUNNER_API_KEY_ENV", "NVIDIA_API_KEY"),
                server_command=os.getenv(
                    "AGENT_RUNNER_OPENCODE_COMMAND",
                    DEFAULT_OPENCODE_COMMAND,
                ),
                hostname=os.getenv("AGENT_RUNNER_OPENCODE_HOSTNAME", "127.0.0.1"),
                port=int(os.getenv("AGENT_RUNNER_OPENCODE_PORT", "4096")),
                startup_timeout_seconds=float(
                    os.getenv("AGENT_RUNNER_OPENCODE_STARTUP_TIMEOUT_SECONDS", "30"),
                ),
                request_timeout_seconds=float(request_timeout) if request_timeout else None,
                mcp_command=mcp_command or None,
            ),
            output=OutputSettings(
                start_marker=os.getenv(
                    "AGENT_RUNNER_OUTPUT_START_MARKER",
                    "---AGENT_RUNNER_OUTPUT_START---",
                ),
                end_marker=os.getenv(
                    "AGENT_RUNNER_OUTPUT_END_MARKER",
                    "---AGENT_RUNNER_OUTPUT_END---",
                ),
            ),
            log_level=os.getenv("AGENT_RUNNER_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values the runner cannot work with."""

        if self.mailbox.poll_interval_seconds <= 0:
            raise ValueError("AGENT_RUNNER_POLL_INTERVAL_MS must be > 0.")
        if self.engine.kind not in SUPPORTED_ENGINES:
            raise ValueError(
                f"Unsupported AGENT_RUNNER_ENGINE: {self.engine.kind!r}. "
                f"Expected one of: {', '.join(SUPPORTED_ENGINES)}.",
            )
        if not 0 < self.engine.port < 65_536:
            raise ValueError("AGENT_RUNNER_OPENCODE_PORT must be in 1..65535.")
        if self.engine.startup_timeout_seconds <= 0:
            raise ValueError("AGENT_RUNNER_OPENCODE_STARTUP_TIMEOUT_SECONDS must be > 0.")
        if self.engine.request_timeout_seconds is not None and (
            self.engine.request_timeout_seconds <= 0
        ):
            raise ValueError("AGENT_RUNNER_REQUEST_TIMEOUT_SECONDS must be > 0 when set.")
        start = self.output.start_marker.strip()
        end = self.output.end_marker.strip()
        if not start or not end:
            raise ValueError("Output markers must be non-empty.")
        if start == end:
            raise ValueError("Output start and end markers must differ.")
