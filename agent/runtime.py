"""
Adapter between AgentSession and the external agent runtime.

The session only depends on the ``AgentRuntime`` protocol: ``stream(prompt,
resume_token)`` yields normalized AgentEvents and is aborted by cancelling
the task that consumes it. ``ClaudeAgentRuntime`` implements it on top of
``claude_agent_sdk.query``.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    SystemMessage,
    TextBlock,
    ToolUseBlock,
    query,
)

from config import AgentConfig, CUSTOM_TOOL_SERVER, agent_config
from tools import create_chatooly_server
from .events import AgentEvent, Assistant, Result, SystemInit, ToolUse
from .prompts import load_system_prompt

logger = logging.getLogger(__name__)


class AgentRuntimeError(Exception):
    """The agent runtime failed during a turn"""
    pass


class AgentRuntime(Protocol):
    def stream(self, prompt: str, resume_token: Optional[str] = None) -> AsyncIterator[AgentEvent]:
        ...


def translate_message(message: Any) -> List[AgentEvent]:
    """Map one SDK message to zero or more normalized events.

    Assistant text blocks are joined into one ``assistant`` event; each
    tool-use block becomes its own ``tool_use`` event, in block order.
    Messages the gateway does not relay (user echoes, stream deltas,
    non-init system messages) map to nothing.
    """
    if isinstance(message, AssistantMessage):
        events: List[AgentEvent] = []
        texts = [block.text for block in message.content if isinstance(block, TextBlock)]
        text = "\n".join(t for t in texts if t)
        if text:
            events.append(Assistant(content=text, uuid=getattr(message, "uuid", None)))
        for block in message.content:
            if isinstance(block, ToolUseBlock):
                events.append(ToolUse(tool=block.name, input=dict(block.input or {})))
        return events

    if isinstance(message, SystemMessage):
        if message.subtype != "init":
            return []
        data = message.data or {}
        return [SystemInit(
            session_id=data.get("session_id", ""),
            tools=list(data.get("tools") or []),
            model=data.get("model", ""),
        )]

    if isinstance(message, ResultMessage):
        errors = getattr(message, "errors", None) or []
        return [Result(
            subtype=message.subtype,
            result=message.result,
            duration_ms=message.duration_ms,
            total_cost_usd=message.total_cost_usd,
            num_turns=message.num_turns,
            errors=[str(e) for e in errors],
        )]

    return []


class ClaudeAgentRuntime:
    """Runs turns through ``claude_agent_sdk.query`` with the tool-builder setup."""

    def __init__(
        self,
        project_root: str,
        config: Optional[AgentConfig] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.project_root = project_root
        self.config = config or agent_config
        self.env = dict(env or {})
        self.system_prompt = load_system_prompt(project_root, self.config)
        self._mcp_server = None

    def _tool_server(self):
        if self._mcp_server is None:
            self._mcp_server = create_chatooly_server(self.project_root, self.config)
        return self._mcp_server

    def build_options(self, resume_token: Optional[str] = None) -> ClaudeAgentOptions:
        return ClaudeAgentOptions(
            system_prompt={
                "type": "preset",
                "preset": "claude_code",
                "append": self.system_prompt,
            },
            setting_sources=["project"],
            cwd=self.project_root,
            allowed_tools=list(self.config.allowed_tools),
            permission_mode=self.config.permission_mode,
            mcp_servers={CUSTOM_TOOL_SERVER: self._tool_server()},
            max_turns=self.config.max_turns,
            model=self.config.model,
            resume=resume_token,
            env=self.env,
        )

    async def stream(self, prompt: str, resume_token: Optional[str] = None) -> AsyncIterator[AgentEvent]:
        options = self.build_options(resume_token)
        if resume_token:
            logger.info("Resuming session: %s", resume_token)
        try:
            async for message in query(prompt=prompt, options=options):
                for event in translate_message(message):
                    yield event
        except AgentRuntimeError:
            raise
        except Exception as e:
            raise AgentRuntimeError(str(e) or type(e).__name__) from e
