"""OpenCode server process management for one sandbox run."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shlex
import subprocess
import sys
import time
from pathlib import Path
from typing import Any

from agent_runner.config import EngineSettings
from agent_runner.runner.contracts import TaskDescriptor
from agent_runner.runner.errors import EngineCallFailure

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "opencode.json"
_PORT_PROBE_INTERVAL_SECONDS = 0.2


def build_opencode_config(
    *,
    settings: EngineSettings,
    task: TaskDescriptor,
) -> dict[str, Any]:
    """Render ``opencode.json`` for this run.

    The API key is referenced through ``{env:...}`` substitution so the secret
    only lives in the server process environment, never on disk.
    """

    provider_id, _, model_id = settings.model.partition("/")
    if not model_id:
        raise ValueError(f"Model must look like '<provider>/<model>': {settings.model!r}")

    config: dict[str, Any] = {
        "$schema": "https://opencode.ai/config.json",
        "provider": {
            provider_id: {
                "npm": "@ai-sdk/openai-compatible",
                "name": f"{provider_id} API",
                "options": {
                    "baseURL": settings.provider_base_url,
                    "apiKey": f"{{env:{settings.api_key_env}}}",
                },
                "models": {model_id: {"name": model_id}},
            },
        },
        "model": settings.model,
    }
    if settings.mcp_command:
        argv = shlex.split(settings.mcp_command)
        config["mcp"] = {
            "agent-runner": {
                "type": "local",
                "command": argv,
                "environment": {
                    "AGENT_RUNNER_CHAT_JID": task.chat_id or "",
                    "AGENT_RUNNER_GROUP_ID": task.group_id,
                    "AGENT_RUNNER_IS_MAIN": "1" if task.is_main else "0",
                },
            },
        }
    return config


def write_opencode_config(path: Path, config: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, ensure_ascii=False, indent=2), "utf-8")
    logger.info("Wrote %s", path)


def build_server_args(settings: EngineSettings) -> list[str]:
    stripped = settings.server_command.strip()
    if not stripped:
        raise EngineCallFailure("OpenCode server command template is empty.")
    try:
        rendered = stripped.format(
            hostname=shlex.quote(settings.hostname),
            port=shlex.quote(str(settings.port)),
        )
    except KeyError as error:
        raise EngineCallFailure(
            f"Unsupported server command placeholder: {error}",
        ) from error
    argv = shlex.split(rendered)
    if not argv:
        raise EngineCallFailure("OpenCode server command rendered empty command.")
    return argv


class OpencodeServer:
    """Launches ``opencode serve`` and stops it on close."""

    def __init__(
        self,
        *,
        settings: EngineSettings,
        task: TaskDescriptor,
        workdir: Path,
    ) -> None:
        self.settings = settings
        self.task = task
        self.workdir = workdir
        self._process: subprocess.Popen[bytes] | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.settings.hostname}:{self.settings.port}"

    def _environment(self) -> dict[str, str]:
        env = os.environ.copy()
        api_key = self.task.secrets.get(self.settings.api_key_env) or env.get(
            self.settings.api_key_env,
            "",
        )
        env[self.settings.api_key_env] = api_key
        return env

    async def start(self) -> str:
        """Start the server and wait until its port accepts connections."""

        write_opencode_config(
            self.workdir / CONFIG_FILENAME,
            build_opencode_config(settings=self.settings, task=self.task),
        )
        argv = build_server_args(self.settings)
        logger.info("Starting OpenCode server: %s", argv[0])
        try:
            # Server chatter must never reach stdout, which carries framed results.
            self._process = subprocess.Popen(  # noqa: S603
                argv,
                cwd=self.workdir,
                env=self._environment(),
                stdin=subprocess.DEVNULL,
                stdout=sys.stderr,
                stderr=sys.stderr,
            )
        except FileNotFoundError as error:
            raise EngineCallFailure(f"OpenCode server command not found: {argv[0]}") from error
        except OSError as error:
            raise EngineCallFailure(f"OpenCode server failed to start: {error}") from error

        await self._wait_until_ready()
        logger.info("OpenCode server running at %s", self.base_url)
        return self.base_url

    async def _wait_until_ready(self) -> None:
        deadline = time.monotonic() + self.settings.startup_timeout_seconds
        while True:
            if self._process is not None and self._process.poll() is not None:
                raise EngineCallFailure(
                    f"OpenCode server exited early with code {self._process.returncode}",
                )
            try:
                _, writer = await asyncio.open_connection(
                    self.settings.hostname,
                    self.settings.port,
                )
            except OSError:
                if time.monotonic() >= deadline:
                    self.stop()
                    raise EngineCallFailure(
                        "OpenCode server did not accept connections within "
                        f"{self.settings.startup_timeout_seconds:.0f}s",
                    ) from None
                await asyncio.sleep(_PORT_PROBE_INTERVAL_SECONDS)
                continue
            writer.close()
            await writer.wait_closed()
            return

    def stop(self) -> None:
        process = self._process
        self._process = None
        if process is None or process.poll() is not None:
            return
        logger.info("Shutting down OpenCode server")
        _terminate_process(process)


def _terminate_process(process: subprocess.Popen[bytes]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
