"""
Normalized agent event types.

Every event a ChatTurn produces is one of these dataclasses; ``to_message``
renders the wire payload sent to the browser.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class AgentEvent:
    """Base class for events emitted during a ChatTurn"""
    type = "event"
    terminal = False

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type}


@dataclass
class Thinking(AgentEvent):
    message: str = "Agent is processing..."
    type = "thinking"

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}


@dataclass
class Assistant(AgentEvent):
    content: str = ""
    uuid: Optional[str] = None
    type = "assistant"

    def to_message(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {"type": self.type, "content": self.content}
        if self.uuid:
            msg["uuid"] = self.uuid
        return msg


@dataclass
class ToolUse(AgentEvent):
    tool: str = ""
    input: Dict[str, Any] = field(default_factory=dict)
    type = "tool_use"

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "tool": self.tool, "input": self.input}


@dataclass
class SystemInit(AgentEvent):
    """Runtime initialization; carries the resumption token."""
    session_id: str = ""
    tools: List[str] = field(default_factory=list)
    model: str = ""
    type = "system"

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "subtype": "init",
            "tools": self.tools,
            "model": self.model,
            "session_id": self.session_id,
        }


@dataclass
class Result(AgentEvent):
    subtype: str = "success"
    result: Optional[str] = None
    duration_ms: int = 0
    total_cost_usd: Optional[float] = None
    num_turns: int = 0
    errors: List[str] = field(default_factory=list)
    type = "result"
    terminal = True

    @property
    def success(self) -> bool:
        return self.subtype == "success"

    @property
    def metrics(self) -> Dict[str, Any]:
        return {
            "duration_ms": self.duration_ms,
            "total_cost_usd": self.total_cost_usd,
            "num_turns": self.num_turns,
        }

    def to_message(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {
            "type": self.type,
            "subtype": self.subtype,
            "result": self.result,
            "metrics": self.metrics,
        }
        if self.errors:
            msg["errors"] = list(self.errors)
        return msg


@dataclass
class Error(AgentEvent):
    message: str = ""
    type = "error"
    terminal = True

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}


@dataclass
class Cancelled(AgentEvent):
    message: str = "Agent session was cancelled"
    type = "cancelled"
    terminal = True

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message}
