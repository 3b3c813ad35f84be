"""Specialized agents: chat, code and reasoning."""
from quonx.agents.base_agent import BaseAgent
from quonx.agents.chat_agent import ChatAgent
from quonx.agents.code_agent import CodeAgent
from quonx.agents.reasoning_agent import ReasoningAgent
from quonx.agents.runtime import AgentRuntime

__all__ = ["AgentRuntime", "BaseAgent", "ChatAgent", "CodeAgent", "ReasoningAgent"]
