"""Agent engine adapters."""

from agent_runner.engine.base import AgentEngine, EngineReply, extract_reply_text
from agent_runner.engine.echo_engine import EchoEngine
from agent_runner.engine.factory import build_engine
from agent_runner.engine.opencode import OpencodeEngine

__all__ = [
    "AgentEngine",
    "EchoEngine",
    "EngineReply",
    "OpencodeEngine",
    "build_engine",
    "extract_reply_text",
]
