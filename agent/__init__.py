"""
Agent package - resumable conversations with the agent runtime.

- events: normalized AgentEvent types sent to the browser
- attachments: image payload validation and temporary staging
- prompts: tool-builder system prompt
- runtime: AgentRuntime protocol and the claude_agent_sdk adapter
- session: AgentSession / ChatTurn (resume token, abort, terminal latch)
"""

from .events import (
    AgentEvent,
    Assistant,
    Cancelled,
    Error,
    Result,
    SystemInit,
    Thinking,
    ToolUse,
)
from .attachments import (
    Attachment,
    AttachmentError,
    AttachmentStager,
    attach_to_prompt,
    normalize_attachments,
)
from .prompts import FALLBACK_SYSTEM_PROMPT, load_system_prompt
from .runtime import AgentRuntime, AgentRuntimeError, ClaudeAgentRuntime, translate_message
from .session import AgentSession, ChatTurn, SessionBusyError

__all__ = [
    # Events
    "AgentEvent",
    "Assistant",
    "Cancelled",
    "Error",
    "Result",
    "SystemInit",
    "Thinking",
    "ToolUse",

    # Attachments
    "Attachment",
    "AttachmentError",
    "AttachmentStager",
    "attach_to_prompt",
    "normalize_attachments",

    # Prompt
    "FALLBACK_SYSTEM_PROMPT",
    "load_system_prompt",

    # Runtime
    "AgentRuntime",
    "AgentRuntimeError",
    "ClaudeAgentRuntime",
    "translate_message",

    # Session
    "AgentSession",
    "ChatTurn",
    "SessionBusyError",
]
