"""Shared types for the tools package."""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ToolResult:
    """Result from executing a tool"""
    success: bool
    output: str
    error: Optional[str] = None

    def to_mcp(self) -> Dict[str, Any]:
        """Render as an MCP tool response (text content, error flag)."""
        if self.success:
            return {"content": [{"type": "text", "text": self.output}]}
        return {
            "content": [{"type": "text", "text": self.error or self.output}],
            "is_error": True,
        }
