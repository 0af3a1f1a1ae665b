"""OpenCode engine adapter over the server's HTTP API."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from agent_runner.engine.base import EngineReply
from agent_runner.engine.server import OpencodeServer
from agent_runner.runner.errors import EngineCallFailure

logger = logging.getLogger(__name__)


class OpencodeEngine:
    """``AgentEngine`` backed by an OpenCode server.

    The server is optional: when given, it is started lazily on first use and
    stopped by ``close``. Without one, ``base_url`` must point to a running
    server (or ``client`` must be preconfigured, e.g. with a mock transport).
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        server: OpencodeServer | None = None,
        client: httpx.AsyncClient | None = None,
        request_timeout_seconds: float | None = None,
    ) -> None:
        self._server = server
        self._base_url = base_url
        self._client = client
        self._timeout = request_timeout_seconds
        self._closed = False

    async def _http(self) -> httpx.AsyncClient:
        if self._closed:
            raise EngineCallFailure("engine is closed")
        if self._client is None:
            base_url = self._base_url
            if base_url is None:
                if self._server is None:
                    raise EngineCallFailure("no OpenCode server or base URL configured")
                base_url = await self._server.start()
            self._client = httpx.AsyncClient(base_url=base_url, timeout=self._timeout)
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        client = await self._http()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as error:
            raise EngineCallFailure(f"{method} {path} failed: {error}") from error
        if response.is_error:
            raise EngineCallFailure(
                f"{method} {path} returned {response.status_code}: {_error_detail(response)}",
            )
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as error:
            raise EngineCallFailure(f"{method} {path} returned invalid JSON") from error

    async def create(self, *, title: str) -> str:
        session = await self._request("POST", "/session", json={"title": title})
        return _session_id(session)

    async def get(self, session_id: str) -> str:
        session = await self._request("GET", f"/session/{session_id}")
        return _session_id(session)

    async def prompt(self, session_id: str, text: str, *, no_reply: bool = False) -> EngineReply:
        body: dict[str, Any] = {"parts": [{"type": "text", "text": text}]}
        if no_reply:
            body["noReply"] = True
        reply = await self._request("POST", f"/session/{session_id}/message", json=body)
        if reply is None:
            return {}
        if not isinstance(reply, dict):
            raise EngineCallFailure("prompt returned a non-object reply")
        info = reply.get("info")
        if isinstance(info, dict) and info.get("error"):
            raise EngineCallFailure(json.dumps(info["error"], ensure_ascii=False))
        return reply

    async def abort(self, session_id: str) -> None:
        await self._request("POST", f"/session/{session_id}/abort")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._client is not None:
                await self._client.aclose()
        finally:
            if self._server is not None:
                self._server.stop()


def _session_id(payload: Any) -> str:
    if isinstance(payload, dict) and isinstance(payload.get("id"), str) and payload["id"]:
        return payload["id"]
    raise EngineCallFailure("engine returned a session without an id")


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:500] or response.reason_phrase
    return json.dumps(payload, ensure_ascii=False)[:500]
