"""Model adapters, the tool-call parser and the agent loop."""

from md2slack.llm.agent import Agent, AgentCallbacks, AgentResult, decode_json_reply
from md2slack.llm.base import LLMAdapter, LLMOptions, LLMResponse, Message, ToolCall, ToolDefinition
from md2slack.llm.factory import build_adapter, options_from_config
from md2slack.llm.parser import calls_from_response, parse_tool_calls
from md2slack.llm.prompts import load_prompt

__all__ = [
    "Agent",
    "AgentCallbacks",
    "AgentResult",
    "LLMAdapter",
    "LLMOptions",
    "LLMResponse",
    "Message",
    "ToolCall",
    "ToolDefinition",
    "build_adapter",
    "calls_from_response",
    "decode_json_reply",
    "load_prompt",
    "options_from_config",
    "parse_tool_calls",
]
